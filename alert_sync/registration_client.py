"""
Async client for the remote alerting backend.

Registers, moves and cancels push alerts. Every failure (backend error
payload, HTTP status, timeout, connection problem) is returned to the caller
as an `{"error": message}` dict; nothing is raised past this client.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp
import structlog

from . import metrics
from .models import PushSubscription

logger = structlog.get_logger()


def strip_fragment(url: str) -> str:
    return url.split("#", 1)[0]


class RemoteRegistrationClient:
    """Async HTTP client for the alerting backend."""

    def __init__(
        self,
        url: str,
        *,
        origin: str = "",
        request_timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.url = url
        self.origin = strip_fragment(origin)
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._session = session
        self._owns_session = session is None

    async def initialize(self) -> None:
        """Create the underlying HTTP session if it does not exist."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
            logger.info("registration_client_initialized", url=self.url)

    async def close(self) -> None:
        """Close the HTTP session when this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
        logger.info("registration_client_closed")

    async def register(
        self,
        subscription: PushSubscription,
        market: str,
        price: float,
        *,
        current_price: Optional[float] = None,
        unsubscribe: Optional[bool] = None,
        new_price: Optional[float] = None,
        status: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """
        Send an alert operation to the backend.

        Create and remove requests carry `currentPrice`, `unsubscribe` and
        `status`; move requests carry `newPrice` and `currentPrice`.
        """
        body: Dict[str, Any] = {
            **subscription.to_dict(),
            "origin": self.origin,
            "market": market,
            "price": price,
        }
        if new_price is not None:
            body["newPrice"] = new_price
            body["currentPrice"] = current_price
        else:
            body["currentPrice"] = current_price
            body["unsubscribe"] = unsubscribe
            body["status"] = status
        body = {key: value for key, value in body.items() if value is not None}

        result = await self._post(body)
        outcome = "error" if "error" in result else "ok"
        metrics.registration_requests_total.labels(outcome=outcome).inc()
        return result

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        await self.initialize()

        try:
            async with self._session.post(self.url, json=body) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None

                if isinstance(data, dict) and data.get("error"):
                    raise RuntimeError(data["error"])

                if response.status >= 400:
                    raise RuntimeError(f"Backend responded with status {response.status}")

                if not isinstance(data, dict):
                    raise RuntimeError("Backend returned an invalid response")

                return data
        except asyncio.TimeoutError:
            logger.error("alert_backend_timeout", market=body.get("market"))
            return {"error": "Request timed out"}
        except aiohttp.ClientError as exc:
            logger.error("alert_backend_http_error", market=body.get("market"), error=str(exc))
            return {"error": str(exc) or exc.__class__.__name__}
        except RuntimeError as exc:
            logger.error("alert_backend_rejected", market=body.get("market"), error=str(exc))
            return {"error": str(exc)}
