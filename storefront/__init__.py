"""Storefront order placement and inventory service."""

__version__ = "1.0.0"
