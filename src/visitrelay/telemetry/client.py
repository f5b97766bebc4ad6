"""Analytics sink client for relaying composed events."""

import asyncio
import contextlib
import logging
import random
from collections import deque
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

import httpx

_TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


class Sink(Protocol):
    """Capabilities the relay needs from an analytics backend."""

    def capture(
        self,
        distinct_id: str,
        event_name: str,
        properties: dict[str, Any] | None = None,
        groups: dict[str, str] | None = None,
    ) -> None: ...

    def identify(self, distinct_id: str, properties: dict[str, Any] | None = None) -> None: ...

    def alias(self, distinct_id: str, alias: str) -> None: ...

    def group_identify(
        self,
        distinct_id: str,
        group_type: str,
        group_key: str,
        properties: dict[str, Any] | None = None,
    ) -> None: ...

    async def shutdown(self, timeout: float | None = None) -> None: ...


class Client:
    """
    Async batching client for a PostHog-compatible capture API.

    Enqueueing never blocks and never raises on delivery problems: messages
    are buffered in memory and sent to ``{host}/batch/`` by a background
    task, in batches of ``flush_at`` or every ``flush_interval`` seconds.

    Usage:
        from visitrelay.telemetry import Client

        client = Client(api_key="phc_...", host="https://eu.i.posthog.com")
        client.start()

        client.capture("user-1", "$pageview", {"$current_url": "https://example.com/"})
        client.group_identify("user-1", "organization", "org_1")

        await client.shutdown(timeout=5.0)
    """

    def __init__(
        self,
        api_key: str,
        host: str,
        timeout: float = 30.0,
        fail_silently: bool = True,
        max_retries: int = 3,
        flush_at: int = 20,
        flush_interval: float = 0.5,
        max_queue_size: int = 10_000,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Project API key sent with every batch.
            host: Base URL of the capture API.
            timeout: Request timeout in seconds.
            fail_silently: If True, log failed batches instead of raising.
            max_retries: Number of retries for transient HTTP errors.
            flush_at: Queue length that triggers an immediate flush.
            flush_interval: Seconds between periodic flushes.
            max_queue_size: Messages beyond this many are dropped.
            logger: Logger instance; defaults to ``logging.getLogger("visitrelay.telemetry")``.
        """
        self.host = host.rstrip("/")
        self.api_key = api_key
        self.fail_silently = fail_silently
        self.max_retries = max_retries
        self.flush_at = flush_at
        self.flush_interval = flush_interval
        self.logger = logger or logging.getLogger("visitrelay.telemetry")
        self.client = httpx.AsyncClient(timeout=timeout)
        self.queue: deque[dict[str, Any]] = deque()
        self.max_queue_size = max_queue_size
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._flush_lock = asyncio.Lock()
        self._closing = False

    # -------------------------------------------------------------------------
    # Enqueueing
    # -------------------------------------------------------------------------

    def _enqueue(self, event: str, distinct_id: str, properties: dict[str, Any]) -> None:
        if len(self.queue) >= self.max_queue_size:
            self.logger.warning("Queue full (%d messages), dropping %s", len(self.queue), event)
            return
        self.queue.append(
            {
                "uuid": str(uuid4()),
                "event": event,
                "distinct_id": distinct_id,
                "properties": properties,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        if len(self.queue) >= self.flush_at:
            self._wakeup.set()

    def capture(
        self,
        distinct_id: str,
        event_name: str,
        properties: dict[str, Any] | None = None,
        groups: dict[str, str] | None = None,
    ) -> None:
        """Queue an event for ``distinct_id``, optionally attributed to groups."""
        props = dict(properties or {})
        if groups:
            props["$groups"] = groups
        self._enqueue(event_name, distinct_id, props)

    def identify(self, distinct_id: str, properties: dict[str, Any] | None = None) -> None:
        """Queue an identify call setting person properties."""
        self._enqueue("$identify", distinct_id, {"$set": properties or {}})

    def alias(self, distinct_id: str, alias: str) -> None:
        """Queue an alias merging ``alias`` (e.g. an anonymous id) into ``distinct_id``."""
        self._enqueue("$create_alias", distinct_id, {"distinct_id": distinct_id, "alias": alias})

    def group_identify(
        self,
        distinct_id: str,
        group_type: str,
        group_key: str,
        properties: dict[str, Any] | None = None,
    ) -> None:
        """Queue a group identify call."""
        self._enqueue(
            "$groupidentify",
            distinct_id,
            {
                "$group_type": group_type,
                "$group_key": group_key,
                "$group_set": properties or {},
            },
        )

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        json: dict | None = None,
    ) -> httpx.Response | None:
        """Send an HTTP request with retry and optional silent failure.

        Retries on transient status codes (429, 500, 502, 503, 504) and
        connection/timeout errors using exponential backoff with jitter.

        Returns:
            The HTTP response, or None if ``fail_silently`` is True and the
            request failed after all retries.
        """
        last_exc: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(method, url, json=json)
                if response.status_code in _TRANSIENT_STATUS_CODES and attempt < self.max_retries:
                    wait = (2**attempt) + random.uniform(0, 1)  # noqa: S311
                    self.logger.warning(
                        "Transient HTTP %s from %s (attempt %d/%d), retrying in %.1fs",
                        response.status_code,
                        url,
                        attempt + 1,
                        self.max_retries + 1,
                        wait,
                    )
                    await asyncio.sleep(wait)
                    continue
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as exc:
                last_exc = exc
                break
            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                last_exc = exc
                if attempt < self.max_retries:
                    wait = (2**attempt) + random.uniform(0, 1)  # noqa: S311
                    self.logger.warning(
                        "%s for %s (attempt %d/%d), retrying in %.1fs",
                        type(exc).__name__,
                        url,
                        attempt + 1,
                        self.max_retries + 1,
                        wait,
                    )
                    await asyncio.sleep(wait)
                    continue
                break

        if self.fail_silently:
            self.logger.warning("Request to %s failed: %s", url, last_exc)
            return None
        raise last_exc  # type: ignore[misc]

    async def flush(self) -> int:
        """Send every queued message.

        Returns:
            Number of messages taken off the queue (delivered or dropped
            after a silent failure).
        """
        sent = 0
        async with self._flush_lock:
            while self.queue:
                batch = [self.queue.popleft() for _ in range(min(self.flush_at, len(self.queue)))]
                await self._request(
                    "POST",
                    f"{self.host}/batch/",
                    json={"api_key": self.api_key, "batch": batch},
                )
                sent += len(batch)
        return sent

    async def _run(self) -> None:
        while not self._closing:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.flush_interval)
            self._wakeup.clear()
            try:
                await self.flush()
            except httpx.HTTPError:
                self.logger.exception("Background flush failed")

    def start(self) -> None:
        """Start the background flush task on the running event loop."""
        if self._task is None or self._task.done():
            self._closing = False
            self._task = asyncio.create_task(self._run(), name="visitrelay-flush")

    async def _drain(self) -> None:
        # A batch the background task is sending completes before the final flush.
        if self._task is not None:
            await self._task
        await self.flush()

    async def shutdown(self, timeout: float | None = 5.0) -> None:
        """Stop the flush task and deliver what is still queued.

        An in-flight background flush is allowed to finish. The whole drain
        is bounded by ``timeout`` seconds; whatever has not been delivered
        by then is abandoned.
        """
        self._closing = True
        self._wakeup.set()
        try:
            await asyncio.wait_for(self._drain(), timeout=timeout)
        except TimeoutError:
            self.logger.warning(
                "Flush did not complete within %.1fs, abandoning %d queued messages",
                timeout,
                len(self.queue),
            )
        finally:
            if self._task is not None:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
                self._task = None
            await self.client.aclose()

    async def __aenter__(self) -> "Client":
        """Context manager entry; starts the flush task."""
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.shutdown()
