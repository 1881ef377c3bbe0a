"""Checkout service for the jewelry shop: pricing, orders and payments."""

__version__ = "0.1.0"
