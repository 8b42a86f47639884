"""Outward status push to the external order source.

Stages may carry the source status they correspond to. When an order lands in
such a stage we tell the source about it; nothing flows back the other way
here, and a failed push never undoes the local transition.
"""

from __future__ import annotations

import logging

import requests

from app.core.config import Config, get_config

logger = logging.getLogger(__name__)


class OrderSourceClient:
    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: int = 10,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Config | None = None) -> "OrderSourceClient | None":
        cfg = config or get_config()
        if not cfg.order_source_enabled:
            return None
        return cls(
            base_url=cfg.ORDER_SOURCE_URL or "",
            api_key=cfg.ORDER_SOURCE_API_KEY,
            timeout_seconds=cfg.ORDER_SOURCE_TIMEOUT_SECONDS,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def push_status(self, order_id: int, status: str) -> bool:
        """Set the order's status in the source system. Returns False on failure."""
        try:
            response = self.session.put(
                f"{self.base_url}/orders/{order_id}",
                json={"status": status},
                headers=self._headers(),
                timeout=(2, self.timeout_seconds),
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            logger.warning(
                "order_source.push_status.failed",
                extra={"event": "order_source.push_status.failed", "order_id": order_id},
            )
            logger.warning("order_source.push_status.failed.details: %s", exc)
            return False

        logger.info(
            "order_source.push_status.ok",
            extra={"event": "order_source.push_status.ok", "order_id": order_id},
        )
        return True
