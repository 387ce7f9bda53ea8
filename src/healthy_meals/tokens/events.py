"""Balance change notifications.

The ledger reports every mutation through a ``BalanceNotifier``. UI refresh,
push channels and other consumers subscribe to a notifier; the ledger never
knows who is listening.
"""

import asyncio
import hashlib
import hmac
import json
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Protocol, Union

from healthy_meals.common.logging import get_logger

logger = get_logger("tokens.events")


@dataclass(frozen=True)
class BalanceChanged:
    user_id: str
    tokens_balance: int
    reason: str


BalanceListener = Callable[[BalanceChanged], Union[None, Awaitable[None]]]


class BalanceNotifier(Protocol):
    async def balance_changed(self, event: BalanceChanged) -> None: ...


class InProcessBalanceNotifier:
    """Fan out balance changes to in-process listeners.

    Listeners may be plain or async callables. A failing listener is logged
    and skipped; it never fails the ledger operation that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: list[BalanceListener] = []

    def subscribe(self, listener: BalanceListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def balance_changed(self, event: BalanceChanged) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if result is not None:
                    await result
            except Exception:
                logger.exception(
                    "Balance listener failed", extra={"user_id": event.user_id}
                )


def sign_event(payload_json: str, secret: str) -> str:
    """Compute HMAC-SHA256 hex digest for a JSON payload."""
    return hmac.new(
        secret.encode("utf-8"),
        payload_json.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class WebhookBalanceNotifier:
    """POST balance changes to an external URL, signed with a shared secret.

    Delivery runs as a background task so a slow receiver never holds up the
    request that changed the balance. ``close()`` waits for pending
    deliveries.
    """

    SIGNATURE_HEADER = "X-Healthy-Meals-Signature"

    def __init__(self, url: str, secret: str = "", timeout: float = 5.0):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._http_client = None
        self._pending: set[asyncio.Task] = set()

    def _get_http_client(self):
        """Lazy-init httpx.AsyncClient."""
        if self._http_client is None:
            import httpx
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def balance_changed(self, event: BalanceChanged) -> None:
        task = asyncio.create_task(self.deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def deliver(self, event: BalanceChanged) -> None:
        import httpx

        payload_json = json.dumps(
            {"event_type": "balance.changed", "data": asdict(event)},
            sort_keys=True,
        )
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers[self.SIGNATURE_HEADER] = sign_event(payload_json, self.secret)

        try:
            resp = await self._get_http_client().post(
                self.url, content=payload_json, headers=headers,
            )
            if resp.status_code >= 400:
                logger.warning(
                    "Balance webhook returned HTTP %s",
                    resp.status_code,
                    extra={"user_id": event.user_id},
                )
        except httpx.HTTPError as e:
            logger.warning(
                "Balance webhook delivery failed: %s", e,
                extra={"user_id": event.user_id},
            )

    async def drain(self) -> None:
        """Wait for deliveries already scheduled."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
