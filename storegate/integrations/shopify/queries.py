"""GraphQL documents sent to the Shopify Admin API."""

SHOP_QUERY = """
query GetShop {
  shop {
    id
    name
    email
    ianaTimezone
    currencyCode
    myshopifyDomain
    plan {
      publicDisplayName
    }
  }
}
"""
