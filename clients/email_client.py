"""
Email gateway client for sending emails via HTTP gateway.

Uses HMAC-SHA256 signature for request authentication. The gateway is the
notification collaborator for invoice mail (payment confirmations).
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)

VALID_SENDERS = ("billing", "system")


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout: float = 10):
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

    def sign(self, payload_json: str) -> str:
        """HMAC-SHA256 hex digest of the exact JSON body sent."""
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Args:
            payload: Dict to send as JSON

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self.sign(payload_json),
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
        except ValueError:
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        sender: str = "billing",
    ) -> None:
        """
        Send an email via gateway.

        Args:
            to: Recipient email address
            subject: Email subject line
            body: Plain text email body
            sender: Sender identity - "billing" or "system" (default: "billing")

        Raises:
            ValueError: If sender is invalid
            EmailGatewayError: On gateway failure
        """
        if sender not in VALID_SENDERS:
            raise ValueError(f"sender must be one of {VALID_SENDERS}, got '{sender}'")

        payload = {
            "type": "custom",
            "email": to,
            "subject": subject,
            "body": body,
            "sender": sender,
        }
        self._sign_and_send(payload)
        logger.info(f"Email sent to {to}: {subject}")
