"""Order Tracking Pro: Shopify order tracking lookups behind a billing gate."""
