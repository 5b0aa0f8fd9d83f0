"""
Unit tests for the bearer token guard.
"""

import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.domain.auth_middleware import BearerTokenGuard
from shared.errors import AuthenticationError, ConfigurationError, ForbiddenError


class TestBearerTokenGuard:
    """Test cases for BearerTokenGuard."""

    @pytest.fixture
    def guard(self):
        return BearerTokenGuard("secret-token")

    def test_matching_token_passes(self, guard):
        guard.check("Bearer secret-token")

    def test_missing_header(self, guard):
        with pytest.raises(AuthenticationError) as exc_info:
            guard.check("")
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("header", [
        "Bearer wrong-token",
        "Basic secret-token",
        "secret-token",
        "Bearer",
    ])
    def test_mismatch_is_forbidden(self, guard, header):
        with pytest.raises(ForbiddenError) as exc_info:
            guard.check(header)
        assert exc_info.value.status_code == 403

    def test_unconfigured_token(self):
        guard = BearerTokenGuard("")

        with pytest.raises(ConfigurationError) as exc_info:
            guard.check("Bearer anything")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_dependency_reads_request_header(self, guard):
        request = MagicMock()
        request.headers = {"Authorization": "Bearer secret-token"}

        await guard(request)

        request.headers = {}
        with pytest.raises(AuthenticationError):
            await guard(request)
