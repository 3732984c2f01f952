"""Remote storefront and ownership clients."""
