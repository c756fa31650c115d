"""shopql - REST-style reads over the Shopify Admin GraphQL API."""
