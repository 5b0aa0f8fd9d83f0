"""
Domain helpers for the proxy service.
"""

from .auth_middleware import BearerTokenGuard

__all__ = ["BearerTokenGuard"]
