"""
Integration Tests for Rate Limiting.

Tests per-user quotas, 429 responses, Retry-After headers and isolation
between users.
"""
import pytest
from unittest.mock import AsyncMock, Mock, patch

from fastapi import Request
from jose import jwt
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from omnichat.middleware.rate_limiter import (
    DISABLED_LIMIT,
    create_limiter,
    endpoint_limit,
    get_limiter,
    get_user_identifier,
    rate_limit_exceeded_handler,
)


class TestRateLimitKeyFunction:
    """Test user identifier extraction for rate limiting."""

    def test_key_function_with_jwt(self):
        """Should extract the subject from the bearer token."""
        token = jwt.encode({"sub": "user123"}, "any-secret", algorithm="HS256")
        mock_request = Mock()
        mock_request.headers = {"Authorization": f"Bearer {token}"}

        identifier = get_user_identifier(mock_request)

        assert identifier == "user:user123"

    def test_key_function_without_auth_header(self):
        """Should fall back to IP address when no auth header."""
        mock_request = Mock()
        mock_request.headers = {}

        with patch("omnichat.middleware.rate_limiter.get_remote_address") as mock_ip:
            mock_ip.return_value = "192.168.1.100"

            identifier = get_user_identifier(mock_request)

            assert identifier == "ip:192.168.1.100"

    def test_key_function_with_invalid_jwt(self):
        """Should fall back to IP when the token cannot be decoded."""
        mock_request = Mock()
        mock_request.headers = {"Authorization": "Bearer invalid.token.here"}
        mock_request.method = "POST"
        mock_request.url.path = "/api/conversations/c1/chat"

        with patch("omnichat.middleware.rate_limiter.get_remote_address") as mock_ip:
            mock_ip.return_value = "192.168.1.100"

            identifier = get_user_identifier(mock_request)

            assert identifier == "ip:192.168.1.100"


class TestLimiterInitialization:
    """Test limiter creation from config."""

    def test_create_limiter_enabled(self):
        with patch("omnichat.middleware.rate_limiter.get_config") as mock_config:
            mock_cfg = Mock()
            mock_cfg.rate_limits.enabled = True
            mock_cfg.rate_limits.storage_uri = "memory://"
            mock_cfg.rate_limits.default_limit = "100/minute"
            mock_config.return_value = mock_cfg

            limiter = create_limiter()

            assert isinstance(limiter, Limiter)

    def test_create_limiter_disabled(self):
        """Should create limiter with high limit when disabled in config."""
        with patch("omnichat.middleware.rate_limiter.get_config") as mock_config:
            mock_cfg = Mock()
            mock_cfg.rate_limits.enabled = False
            mock_config.return_value = mock_cfg

            limiter = create_limiter()

            assert isinstance(limiter, Limiter)

    def test_endpoint_limit_follows_config(self, app_config):
        provider = endpoint_limit("image_generation")

        app_config.rate_limits.enabled = True
        app_config.rate_limits.endpoints.image_generation = "3/minute"
        assert provider() == "3/minute"

        app_config.rate_limits.enabled = False
        assert provider() == DISABLED_LIMIT


@pytest.mark.integration
class TestEndpointRateLimits:
    """Integration tests for endpoint-specific rate limits."""

    @pytest.fixture
    def limited(self, app_config):
        app_config.rate_limits.enabled = True
        app_config.rate_limits.endpoints.chat_messages = "2/minute"
        app_config.rate_limits.endpoints.image_generation = "1/minute"
        get_limiter().reset()
        yield app_config
        get_limiter().reset()

    @pytest.fixture
    def llm(self):
        with patch(
            "omnichat.services.llm_client.LLMClient.chat_completion",
            new_callable=AsyncMock,
            return_value="ok",
        ) as mock:
            yield mock

    def test_chat_rate_limit_exceeded(self, limited, client, conversation, llm):
        """Should return 429 once the chat quota is used up."""
        url = f"/api/conversations/{conversation['id']}/chat"
        for _ in range(2):
            assert client.post(url, json={"message": "hi"}).status_code == 200

        response = client.post(url, json={"message": "hi"})

        assert response.status_code == 429
        assert "Retry-After" in response.headers
        assert response.json()["error"] == "rate_limit_exceeded"
        assert llm.await_count == 2

    def test_different_users_separate_quotas(self, limited, client, conversation, llm, other_headers):
        """Should enforce separate quotas for different users."""
        url = f"/api/conversations/{conversation['id']}/chat"
        for _ in range(2):
            client.post(url, json={"message": "hi"})
        assert client.post(url, json={"message": "hi"}).status_code == 429

        other_conv = client.post(
            "/api/conversations", json={"title": "Other"}, headers=other_headers
        ).json()
        response = client.post(
            f"/api/conversations/{other_conv['id']}/chat",
            json={"message": "hi"},
            headers=other_headers,
        )

        assert response.status_code == 200

    def test_image_generation_rate_limit(self, limited, client, conversation):
        """Should rate limit image generation endpoint."""
        from omnichat.services.image_client import GeneratedImage

        url = f"/api/conversations/{conversation['id']}/images"
        with patch(
            "omnichat.services.image_client.ImageClient.generate_image",
            new_callable=AsyncMock,
            return_value=GeneratedImage(b64_data="cG5n"),
        ):
            assert client.post(url, json={"prompt": "a cat"}).status_code == 201
            response = client.post(url, json={"prompt": "a cat"})

        assert response.status_code == 429

    def test_unlimited_when_disabled(self, client, conversation, llm):
        url = f"/api/conversations/{conversation['id']}/chat"
        for _ in range(5):
            assert client.post(url, json={"message": "hi"}).status_code == 200


class TestRateLimitHeaders:
    """Test that rate limit headers are properly set."""

    def test_retry_after_header_present(self):
        """Should include Retry-After header in 429 response."""
        mock_request = Mock(spec=Request)
        mock_request.url.path = "/api/conversations/c1/chat"
        mock_request.method = "POST"

        limit = Mock()
        limit.error_message = None
        limit.limit = "2 per 1 minute"
        mock_exc = RateLimitExceeded(limit)
        mock_exc.retry_after = 120

        with patch("omnichat.middleware.rate_limiter.get_user_identifier") as mock_id:
            mock_id.return_value = "user:test123"

            response = rate_limit_exceeded_handler(mock_request, mock_exc)

            assert response.status_code == 429
            assert response.headers["Retry-After"] == "120"

            body = response.body.decode()
            assert "rate_limit_exceeded" in body
            assert "retry_after_seconds" in body
