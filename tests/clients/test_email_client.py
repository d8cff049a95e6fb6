"""
Tests for EmailGatewayClient.

Tests verify the client's contract with calling code.
Focus on observable behavior, not implementation details.
"""

import hashlib
import hmac
import json

import pytest
import responses

from clients.email_client import EmailGatewayClient, EmailGatewayError


class TestEmailGatewayClientInit:
    """Test client initialization - fail-fast on invalid config."""

    def test_init_with_valid_credentials(self):
        """Client initializes with all required credentials."""
        client = EmailGatewayClient(
            gateway_url="https://gateway.example.com/send",
            api_key="test-api-key",
            hmac_secret="test-hmac-secret",
        )
        assert client is not None

    def test_init_rejects_empty_gateway_url(self):
        """Empty gateway_url raises ValueError."""
        with pytest.raises(ValueError, match="gateway_url"):
            EmailGatewayClient(
                gateway_url="",
                api_key="test-api-key",
                hmac_secret="test-hmac-secret",
            )

    def test_init_rejects_empty_api_key(self):
        """Empty api_key raises ValueError."""
        with pytest.raises(ValueError, match="api_key"):
            EmailGatewayClient(
                gateway_url="https://gateway.example.com/send",
                api_key="",
                hmac_secret="test-hmac-secret",
            )

    def test_init_rejects_empty_hmac_secret(self):
        """Empty hmac_secret raises ValueError."""
        with pytest.raises(ValueError, match="hmac_secret"):
            EmailGatewayClient(
                gateway_url="https://gateway.example.com/send",
                api_key="test-api-key",
                hmac_secret="",
            )


GATEWAY_URL = "https://gateway.example.com/send"


@pytest.fixture
def client():
    """Create client with test credentials."""
    return EmailGatewayClient(
        gateway_url=GATEWAY_URL,
        api_key="test-api-key",
        hmac_secret="test-hmac-secret",
    )


class TestSendTwoFactorCode:
    """Test send_two_factor_code - uses responses library for HTTP mocking."""

    @responses.activate
    def test_successful_send_returns_none(self, client):
        """Successful gateway response completes without exception."""
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        result = client.send_two_factor_code("user@example.com", "trader1", "123456", 10)

        assert result is None

    @responses.activate
    def test_payload_is_signed(self, client):
        """X-Signature is the HMAC-SHA256 of the exact body sent."""
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_two_factor_code("user@example.com", "trader1", "123456", 10)

        request = responses.calls[0].request
        body = request.body.decode() if isinstance(request.body, bytes) else request.body
        expected = hmac.new(b"test-hmac-secret", body.encode(), hashlib.sha256).hexdigest()
        assert request.headers["X-Signature"] == expected
        assert request.headers["X-API-Key"] == "test-api-key"
        assert json.loads(body) == {
            "type": "two_factor_code",
            "email": "user@example.com",
            "name": "trader1",
            "code": "123456",
            "expires_minutes": 10,
        }

    @responses.activate
    def test_gateway_500_raises_error(self, client):
        """Server error from gateway raises EmailGatewayError."""
        responses.add(
            responses.POST,
            GATEWAY_URL,
            json={"success": False, "message": "Internal error"},
            status=500,
        )

        with pytest.raises(EmailGatewayError):
            client.send_two_factor_code("user@example.com", "trader1", "123456", 10)

    @responses.activate
    def test_gateway_success_false_raises_error(self, client):
        """Gateway returns 200 but success=false raises EmailGatewayError."""
        responses.add(
            responses.POST,
            GATEWAY_URL,
            json={"success": False, "message": "Invalid email"},
            status=200,
        )

        with pytest.raises(EmailGatewayError):
            client.send_two_factor_code("invalid", "trader1", "123456", 10)

    @responses.activate
    def test_connection_failure_raises_error(self, client):
        """Network failure raises EmailGatewayError."""
        responses.add(responses.POST, GATEWAY_URL, body=ConnectionError("Network unreachable"))

        with pytest.raises(EmailGatewayError):
            client.send_two_factor_code("user@example.com", "trader1", "123456", 10)

    @responses.activate
    def test_invalid_json_response_raises_error(self, client):
        """Non-JSON response raises EmailGatewayError."""
        responses.add(responses.POST, GATEWAY_URL, body="not json", status=200)

        with pytest.raises(EmailGatewayError):
            client.send_two_factor_code("user@example.com", "trader1", "123456", 10)


class TestSendActionLink:
    """Test send_action_link - confirmation and reset emails."""

    @responses.activate
    def test_successful_send(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_action_link(
            "user@example.com", "reset_password", "https://app.example.com/reset-password?token=abc"
        )

        sent = json.loads(responses.calls[0].request.body)
        assert sent["type"] == "reset_password"
        assert sent["link"] == "https://app.example.com/reset-password?token=abc"

    def test_unknown_action_raises_value_error(self, client):
        """Unknown action raises ValueError before any HTTP call."""
        with pytest.raises(ValueError, match="action must be"):
            client.send_action_link("user@example.com", "magic_link", "https://app.example.com")

    @responses.activate
    def test_gateway_error_raises_exception(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": False}, status=500)

        with pytest.raises(EmailGatewayError):
            client.send_action_link("user@example.com", "confirm_email", "https://app.example.com")
