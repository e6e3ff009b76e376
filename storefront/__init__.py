"""Storefront demo service: catalog, cart, checkout and order fulfillment."""

__version__ = "1.0.0"
