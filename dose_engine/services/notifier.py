# dose_engine/services/notifier.py
import uuid
from urllib.parse import quote
from typing import Any, Dict, Iterator, List, Optional, Protocol

import requests

from dose_engine.core.engine_config import PUSH_GATEWAY_URL, PUSH_TIMEOUT_S
from dose_engine.schemas.models import ReminderTrigger


class NotificationGatewayError(RuntimeError):
    """Delivery collaborator unavailable or refused the request. Safe to retry."""


class NotificationGateway(Protocol):
    def cancel_scope(self, scope: str) -> int: ...

    def schedule(self, scope: str, trigger: ReminderTrigger) -> str: ...


# process-wide table of armed triggers: scope -> {trigger_id: trigger}
SCHEDULED_TRIGGERS: Dict[str, Dict[str, ReminderTrigger]] = {}


def _trigger_id() -> str:
    return "ntf_" + uuid.uuid4().hex[:10]


class InMemoryNotificationGateway:
    def __init__(self, table: Optional[Dict[str, Dict[str, ReminderTrigger]]] = None):
        self.table = SCHEDULED_TRIGGERS if table is None else table

    def cancel_scope(self, scope: str) -> int:
        return len(self.table.pop(scope, {}))

    def schedule(self, scope: str, trigger: ReminderTrigger) -> str:
        tid = _trigger_id()
        self.table.setdefault(scope, {})[tid] = trigger
        return tid

    def armed(self, scope: str) -> List[ReminderTrigger]:
        return sorted(self.table.get(scope, {}).values(), key=lambda t: t.fire_at)


class HttpNotificationGateway:
    """
    Push gateway client.
      DELETE {base}/scopes/{scope}  -> {"cancelled": n}
      POST   {base}/triggers        -> {"id": "..."}
    Raises NotificationGatewayError on transport errors and HTTP >= 400.
    """

    def __init__(
        self,
        base_url: str = PUSH_GATEWAY_URL,
        timeout_s: int = PUSH_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("PUSH_GATEWAY_URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, timeout=self.timeout_s, **kwargs)
        except requests.RequestException as e:
            raise NotificationGatewayError(f"push gateway unreachable: {e}") from e
        if r.status_code >= 400:
            raise NotificationGatewayError(f"push gateway {r.status_code}: {r.text[:200]}")
        return r

    def cancel_scope(self, scope: str) -> int:
        r = self._request("DELETE", f"/scopes/{quote(scope, safe='')}")
        if not r.content:
            return 0
        try:
            return int((r.json() or {}).get("cancelled", 0))
        except ValueError:
            return 0

    def schedule(self, scope: str, trigger: ReminderTrigger) -> str:
        payload = {"scope": scope, **trigger.model_dump(mode="json", by_alias=True)}
        r = self._request("POST", "/triggers", json=payload)
        try:
            tid = (r.json() or {}).get("id")
        except ValueError as e:
            raise NotificationGatewayError(f"push gateway returned invalid JSON: {r.text[:200]}") from e
        if not tid:
            raise NotificationGatewayError("push gateway did not return a trigger id")
        return str(tid)


def get_notification_gateway() -> Iterator[NotificationGateway]:
    """FastAPI dependency; an HTTP gateway's session is closed after the request."""
    if not PUSH_GATEWAY_URL:
        yield InMemoryNotificationGateway()
        return
    gateway = HttpNotificationGateway(base_url=PUSH_GATEWAY_URL)
    try:
        yield gateway
    finally:
        gateway.close()
