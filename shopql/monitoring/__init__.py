"""
Operator diagnostics: rolling metrics, health checks and reports.
"""
