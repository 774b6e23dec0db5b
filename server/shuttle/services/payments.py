"""Hosted-checkout payment gateway adapter."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from ..core.config import settings
from ..core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInitialization:
    authorization_url: str
    reference: str


@dataclass(frozen=True)
class PaymentVerification:
    success: bool
    metadata: dict[str, Any] = field(default_factory=dict)
    message: str = ""


class PaymentGateway(Protocol):
    async def initialize(
        self,
        amount_minor: int,
        metadata: dict[str, Any],
        email: str,
    ) -> PaymentInitialization:
        """Start a hosted checkout and return where to send the rider."""

    async def verify(self, reference: str) -> PaymentVerification:
        """Ask the gateway whether a checkout completed."""


class PaystackGateway:
    """Paystack transaction API over httpx."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        callback_url: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.secret_key = secret_key or settings.paystack_secret_key
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.callback_url = callback_url or settings.payment_callback_url
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        if not self.secret_key:
            raise ExternalServiceError("payment", "The payment gateway is not configured")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        try:
            if self._client is not None:
                response = await self._client.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            message = ""
            try:
                message = str(e.response.json().get("message") or "")
            except ValueError:
                message = e.response.text
            logger.warning(
                "Payment gateway rejected request",
                extra={"path": path, "status_code": e.response.status_code, "message": message}
            )
            raise ExternalServiceError("payment", message or "The payment gateway rejected the request") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Payment gateway unreachable", extra={"path": path, "error": str(e)})
            raise ExternalServiceError("payment") from e

        if not isinstance(body, dict) or not body.get("data"):
            raise ExternalServiceError("payment", "The payment gateway returned no data")
        return body["data"]

    async def initialize(
        self,
        amount_minor: int,
        metadata: dict[str, Any],
        email: str,
    ) -> PaymentInitialization:
        data = await self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": int(round(amount_minor)),
                "metadata": metadata,
                "callback_url": self.callback_url,
            },
        )
        return PaymentInitialization(
            authorization_url=data["authorization_url"],
            reference=data["reference"],
        )

    async def verify(self, reference: str) -> PaymentVerification:
        data = await self._request("GET", f"/transaction/verify/{reference}")
        metadata = data.get("metadata")
        return PaymentVerification(
            success=data.get("status") == "success",
            metadata=metadata if isinstance(metadata, dict) else {},
            message=data.get("gateway_response") or "",
        )
