"""Checkout API package."""

from checkout.api.routes import admin_router, webhook_router

__all__ = ["webhook_router", "admin_router"]
