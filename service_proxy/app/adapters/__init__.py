"""
Adapters package for the proxy service.

Contains the HTTP client wrapper for the SpaceTraders API. The adapter
encapsulates:

- Base URL, bearer header and request shapes
- The rate-limit interceptor and response cache hooks
- Error handling that maps upstream failures to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .spacetraders_client import SpaceTradersClient

__all__ = [
    "SpaceTradersClient",
]
