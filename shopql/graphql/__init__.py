"""
Query construction and response flattening.

Provides:
- ids: global id codec
- query_builder: plan_query / build_query
- filters: filter grammar and passthrough translation
- normalizer: flat records with REST-style pagination
"""
