"""
HTTP client for the archive governance API.

Every call names its caller explicitly (actor_id, sent as X-Actor-Id); the
client keeps no notion of a "current user".

Failures split two ways:
- TransientNetworkError: the request may never have reached the server
  (connect/read timeouts, dropped connections, 502/503/504). Safe to queue.
- ApiError: the server answered with a final error kind.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from archive_client.config import get_client_settings
from archive_client.errors import ApiError, TransientNetworkError

log = logging.getLogger("archive_client.api")

_TRANSIENT_STATUS = (502, 503, 504)


class ApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        if client is None:
            settings = get_client_settings()
            client = httpx.Client(
                base_url=base_url or settings.api_url,
                timeout=timeout if timeout is not None else settings.timeout_seconds,
            )
        self._client = client

    def close(self) -> None:
        self._client.close()

    # ----------------------------
    # Transport
    # ----------------------------

    def _request(
        self,
        method: str,
        path: str,
        actor_id: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = {"X-Actor-Id": actor_id} if actor_id else {}
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = self._client.request(method, path, headers=headers, json=json, params=params)
        except httpx.TransportError as e:
            log.info("%s %s did not reach the server: %s", method, path, e)
            raise TransientNetworkError(cause=_describe(e))

        if response.status_code in _TRANSIENT_STATUS:
            log.info("%s %s answered %d; treating as transient", method, path, response.status_code)
            raise TransientNetworkError(status_code=response.status_code, cause=f"HTTP {response.status_code}")

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                # something between us and the API answered (a captive portal, a proxy page)
                log.info("%s %s answered %d with a non-JSON body", method, path, response.status_code)
                raise TransientNetworkError(status_code=response.status_code, cause=f"Unreadable response: {_describe(e)}")

        raise _api_error(response)

    # ----------------------------
    # Health
    # ----------------------------

    def ping(self) -> bool:
        self._request("GET", "/healthz")
        return True

    # ----------------------------
    # Contributions
    # ----------------------------

    def create_item(self, actor_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/items", actor_id, json=payload)

    def get_item(self, actor_id: Optional[str], item_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/items/{item_id}", actor_id)

    def list_queue(
        self,
        actor_id: str,
        status: Optional[str] = None,
        type: Optional[str] = None,
        journey_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        sort: str = "created_at_desc",
    ) -> Dict[str, Any]:
        params = {
            "status": status,
            "type": type,
            "journey_id": journey_id,
            "limit": limit,
            "offset": offset,
            "sort": sort,
        }
        return self._request("GET", "/items", actor_id, params=params)

    def allowed_actions(self, actor_id: str, item_id: str) -> List[str]:
        return self._request("GET", f"/items/{item_id}/allowed", actor_id)["allowed"]

    # ----------------------------
    # Decisions (never queued)
    # ----------------------------

    def decide(self, actor_id: str, item_id: str, action: str, note: Optional[str] = None) -> Dict[str, Any]:
        path = {
            "submit": "submit",
            "approve": "approve",
            "reject": "reject",
            "reset_to_pending": "reset",
        }.get(action)
        if path is None:
            raise ApiError("validation_error", f"Unknown action: {action}")
        body = {"note": note} if path != "submit" else None
        return self._request("POST", f"/items/{item_id}/{path}", actor_id, json=body)

    def submit(self, actor_id: str, item_id: str) -> Dict[str, Any]:
        return self.decide(actor_id, item_id, "submit")

    def approve(self, actor_id: str, item_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        return self.decide(actor_id, item_id, "approve", note)

    def reject(self, actor_id: str, item_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        return self.decide(actor_id, item_id, "reject", note)

    def reset_to_pending(self, actor_id: str, item_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        return self.decide(actor_id, item_id, "reset_to_pending", note)

    # ----------------------------
    # Ledger, journeys, messages
    # ----------------------------

    def list_audit(
        self,
        actor_id: str,
        journey_id: Optional[str] = None,
        target_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        params = {
            "journey_id": journey_id,
            "target_id": target_id,
            "action": action,
            "limit": limit,
            "offset": offset,
        }
        return self._request("GET", "/audit", actor_id, params=params)

    def create_journey(self, actor_id: str, title: str, kind: str = "person") -> Dict[str, Any]:
        return self._request("POST", "/journeys", actor_id, json={"title": title, "kind": kind})

    def send_message(self, actor_id: Optional[str], payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/messages", actor_id, json=payload)


def _describe(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__


def _api_error(response: httpx.Response) -> ApiError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    kind = body.get("error") or ("not_found" if response.status_code == 404 else "server_error")
    detail = body.get("detail") if isinstance(body.get("detail"), str) else None
    return ApiError(kind, detail, status_code=response.status_code, fields=body.get("fields"))
