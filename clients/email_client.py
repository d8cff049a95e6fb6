"""
Email gateway client for sending auth emails via HTTP gateway.

Uses HMAC-SHA256 signature for request authentication. The gateway renders
the templates; this client only chooses the template type and its fields.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout: int = 10):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature
            timeout: Request timeout in seconds

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.timeout = timeout

    def _sign(self, payload_json: str) -> str:
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self._sign(payload_json),
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except (json.JSONDecodeError, ValueError):
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_two_factor_code(self, email: str, display_name: str, code: str, expires_minutes: int) -> None:
        """
        Send a one-time sign-in code.

        Raises:
            EmailGatewayError: On any failure
        """
        self._sign_and_send({
            "type": "two_factor_code",
            "email": email,
            "name": display_name,
            "code": code,
            "expires_minutes": expires_minutes,
        })
        logger.info(f"Two-factor code email sent to {email}")

    def send_action_link(self, email: str, action: str, link: str) -> None:
        """
        Send an email carrying a one-time link.

        Args:
            email: Recipient email address
            action: "confirm_email" or "reset_password"
            link: Absolute URL including the token

        Raises:
            ValueError: If action is unknown
            EmailGatewayError: On gateway failure
        """
        if action not in ("confirm_email", "reset_password"):
            raise ValueError(f"action must be 'confirm_email' or 'reset_password', got '{action}'")

        self._sign_and_send({
            "type": action,
            "email": email,
            "link": link,
            "sender": "auth",
        })
        logger.info(f"{action} email sent to {email}")

