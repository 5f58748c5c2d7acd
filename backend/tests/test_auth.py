"""
Unit tests for bearer credential extraction.
"""

import pytest
from fastapi import HTTPException

from taxreport.auth import get_access_token


class TestGetAccessToken:
    """Test Authorization header parsing."""

    @pytest.mark.asyncio
    async def test_valid_header_returns_token(self):
        token = await get_access_token("Bearer eyJ0eXAi.graph.token")
        assert token == "eyJ0eXAi.graph.token"

    @pytest.mark.asyncio
    async def test_missing_header_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_access_token(None)

        assert exc_info.value.status_code == 401
        assert "Not authenticated" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_missing_bearer_prefix_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_access_token("eyJ0eXAi.graph.token")

        assert exc_info.value.status_code == 401
        assert "Invalid authentication" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_wrong_scheme_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_access_token("Basic dXNlcjpwYXNz")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_bearer_without_token_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_access_token("Bearer ")

        assert exc_info.value.status_code == 401
