"""
Lalamove delivery API client (v3).

Requests are signed with HMAC-SHA256 over
``{ts}\\r\\n{METHOD}\\r\\n{path}\\r\\n\\r\\n{body}`` and sent with
``Authorization: hmac {apiKey}:{ts}:{signature}``.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from flask import current_app

from prorentals.utils.errors import UpstreamError
from prorentals.utils.http import build_session, upstream_status

logger = logging.getLogger(__name__)

TRACKING_URL = "https://www.lalamove.com/track/{order_id}"
DEFAULT_SERVICE_TYPE = "MOTORCYCLE"
LANGUAGE = "pt_BR"


def sign_request(secret: str, timestamp: str, method: str, path: str, body: str = "") -> str:
    raw = f"{timestamp}\r\n{method}\r\n{path}\r\n\r\n{body}"
    return hmac.new(secret.encode("utf-8"), raw.encode("utf-8"), hashlib.sha256).hexdigest()


def tracking_url(order_id: str) -> str:
    return TRACKING_URL.format(order_id=order_id)


class LalamoveClient:
    def __init__(
        self,
        api_key: str,
        secret: str,
        base_url: str = "https://rest.sandbox.lalamove.com",
        market: str = "BR",
        timeout: float = 30,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        self.api_key = api_key
        self.secret = secret
        self.base_url = (base_url or "").rstrip("/")
        self.market = market
        self.timeout = timeout
        self.session = build_session(max_retries, backoff_factor)

    @classmethod
    def from_config(cls, config) -> "LalamoveClient":
        return cls(
            api_key=config.get("LALAMOVE_API_KEY", ""),
            secret=config.get("LALAMOVE_SECRET", ""),
            base_url=config.get("LALAMOVE_BASE_URL", "https://rest.sandbox.lalamove.com"),
            market=config.get("LALAMOVE_MARKET", "BR"),
            timeout=config.get("GATEWAY_TIMEOUT_SECONDS", 30),
            max_retries=config.get("GATEWAY_MAX_RETRIES", 3),
            backoff_factor=config.get("GATEWAY_BACKOFF_FACTOR", 0.5),
        )

    def _headers(self, method: str, path: str, body: str) -> Dict[str, str]:
        timestamp = str(int(time.time() * 1000))
        signature = sign_request(self.secret, timestamp, method, path, body)
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"hmac {self.api_key}:{timestamp}:{signature}",
            "Market": self.market,
        }

    def _request(self, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_key or not self.secret:
            raise UpstreamError("Lalamove credentials are not configured", status_code=500)

        body = json.dumps({"data": data}, separators=(",", ":")) if data is not None else ""
        headers = self._headers(method, path, body)
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                data=body.encode("utf-8") if body else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Lalamove request failed: %s %s - %s", method, path, e)
            raise UpstreamError("Delivery provider unavailable", status_code=500, payload={"provider": "lalamove"})

        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = {"raw": response.text[:500]}
            logger.error("Lalamove request failed: %s %s - status=%s %s", method, path, response.status_code, details)
            raise UpstreamError(
                f"Lalamove error {response.status_code}",
                status_code=upstream_status(response.status_code),
                errors={"gateway": details.get("errors", details) if isinstance(details, dict) else details},
                payload={"provider": "lalamove", "providerStatus": response.status_code},
            )

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError("Invalid response from delivery provider", status_code=500)
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            return payload["data"]
        return payload

    def get_quotation(self, stops: List[Dict[str, Any]], service_type: str = DEFAULT_SERVICE_TYPE, **extra) -> Dict[str, Any]:
        data = {"serviceType": service_type, "stops": stops, "language": LANGUAGE}
        data.update(extra)
        return self._request("POST", "/v3/quotations", data)

    def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/v3/orders", order)

    def get_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v3/orders/{order_id}")

    def cancel_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/v3/orders/{order_id}")

    @staticmethod
    def tracking_url(order_id: str) -> str:
        return tracking_url(order_id)


def get_client() -> LalamoveClient:
    return LalamoveClient.from_config(current_app.config)
