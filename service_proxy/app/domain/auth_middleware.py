"""
Bearer token guard for personal proxy routes.
"""

import hmac

from fastapi import Request

from shared.logging import get_logger
from shared.errors import AuthenticationError, ConfigurationError, ForbiddenError


class BearerTokenGuard:
    """Only lets requests through whose bearer token matches the configured one."""

    def __init__(self, expected_token: str):
        self.expected_token = expected_token
        self.logger = get_logger("proxy.auth_middleware")

    def check(self, authorization: str) -> None:
        if not self.expected_token:
            raise ConfigurationError("SpaceTraders token is not configured.")

        if not authorization:
            raise AuthenticationError("Authorization header is required.")

        scheme, _, token = authorization.partition(" ")
        if scheme != "Bearer" or not hmac.compare_digest(token.encode(), self.expected_token.encode()):
            self.logger.warning("Rejected bearer token", scheme=scheme)
            raise ForbiddenError("Invalid bearer token.")

    async def __call__(self, request: Request) -> None:
        """FastAPI dependency."""
        self.check(request.headers.get("Authorization", ""))
