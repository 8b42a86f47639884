"""Async HTTP transport for the workflow board API."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

import httpx

from app.core.exceptions import ERRORS_BY_CODE, InvalidPatch, NetworkFailure, ServiceError, Unauthorized

logger = logging.getLogger(__name__)


class BoardTransport(Protocol):
    async def fetch_board(self, filters: Mapping[str, Any] | None = None) -> dict[str, Any]: ...

    async def update_order(self, order_id: int, changes: Mapping[str, Any]) -> dict[str, Any]: ...

    async def bulk_update(self, order_ids: Sequence[int], patch: Mapping[str, Any]) -> dict[str, Any]: ...

    async def set_stage_visibility(self, stage_id: int, hidden: bool) -> dict[str, Any]: ...


class WorkflowApiClient:
    """Talks to ``{base_url}/workflow``.

    ``token_provider`` is called before every request so a refreshed
    credential is picked up without rebuilding the client. Requests are
    never retried; callers reconcile by re-fetching the board.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str],
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {"Authorization": f"Bearer {self.token_provider()}"}
        url = f"{self.base_url}/workflow{path}"
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            logger.warning(
                "sync.transport.failed",
                extra={"event": "sync.transport.failed", "method": method, "path": path},
            )
            raise NetworkFailure(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise Unauthorized("Credential rejected by the workflow API.")
        if response.status_code >= 400:
            raise _error_from_response(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ServiceError(f"{method} {path} returned a non-JSON body.") from exc

    async def fetch_board(self, filters: Mapping[str, Any] | None = None) -> dict[str, Any]:
        params = {key: value for key, value in (filters or {}).items() if value not in (None, "")}
        return await self._request("GET", "/board", params=params)

    async def fetch_stats(self) -> dict[str, Any]:
        return await self._request("GET", "/stats")

    async def update_order(self, order_id: int, changes: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/orders/{order_id}", json=dict(changes))

    async def bulk_update(self, order_ids: Sequence[int], patch: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/bulk-update", json={"order_ids": list(order_ids), **patch})

    async def set_stage_visibility(self, stage_id: int, hidden: bool) -> dict[str, Any]:
        return await self._request("PUT", f"/stages/{stage_id}/visibility", json={"is_hidden": hidden})

    async def fetch_history(self, order_id: int) -> list[dict[str, Any]]:
        return await self._request("GET", f"/orders/{order_id}/history")


def _error_from_response(response: httpx.Response) -> Exception:
    try:
        body = response.json()
    except ValueError:
        body = {}
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        exc_type = ERRORS_BY_CODE.get(str(detail.get("error_code")), ServiceError)
        return exc_type(str(detail.get("detail") or response.reason_phrase))
    if response.status_code == 422:
        # Request-schema rejections carry a list of field errors.
        return InvalidPatch(str(detail))
    return ServiceError(f"Workflow API returned {response.status_code}: {detail or response.reason_phrase}")
