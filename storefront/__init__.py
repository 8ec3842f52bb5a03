"""Checkout, order lifecycle and category hierarchy services."""
