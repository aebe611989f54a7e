import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
import httpx
from loguru import logger

DIRECTORY_ROUTE = "/engine/directory"
BATCH_ROUTE = "/engine/batch"
ERA_ROUTE = "/engine/era"

Event = Tuple[str, Dict[str, Any]]


class TelemetryClient:
    """
    Publishes engine events (directory built, batch chunk merged, era
    unavailable) to an HTTP collector.

    Publishing only enqueues; a worker task posts events in order. Without an
    endpoint the client is disabled and every call is a no-op.
    """

    def __init__(
        self,
        endpoint: Optional[str],
        queue_size: int = 1000,
        poll_interval: float = 1.0,
        timeout: float = 5.0,
        attempts: int = 3,
    ):
        self.endpoint = (endpoint or "").rstrip("/")
        self.enabled = bool(self.endpoint)
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.attempts = attempts

        self.queue: "asyncio.Queue[Event]" = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self._closed = False
        self._worker: Optional[asyncio.Task] = None
        self._http: Optional[httpx.AsyncClient] = None

        logger.info(f"Engine telemetry {'enabled, posting to ' + self.endpoint if self.enabled else 'disabled'}")

    def start(self):
        if not self.enabled or self._worker:
            return
        self._http = httpx.AsyncClient(base_url=self.endpoint, timeout=httpx.Timeout(self.timeout))
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="engine-telemetry")

    def publish(self, route: str, payload: Dict[str, Any]):
        if not self.enabled or self._closed:
            return
        event = {**payload, "ts": datetime.now(timezone.utc).isoformat()}
        try:
            self.queue.put_nowait((route, event))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Telemetry queue full, dropped {route} event ({self.dropped} dropped so far)")

    def directory_loaded(self, network: str, era: int, validators: int, average_commission: float):
        self.publish(
            DIRECTORY_ROUTE,
            {"network": network, "era": era, "validators": validators, "average_commission": average_commission},
        )

    def batch_merged(self, network: str, era: int, computed: int):
        self.publish(BATCH_ROUTE, {"network": network, "era": era, "computed": computed})

    def era_unavailable(self, network: str, attempts: int):
        self.publish(ERA_ROUTE, {"network": network, "attempts": attempts})

    async def _post(self, route: str, event: Dict[str, Any]) -> bool:
        for attempt in range(1, self.attempts + 1):
            try:
                response = await self._http.post(route, json=event)
            except httpx.HTTPError as e:
                logger.debug(f"Telemetry post to {route} failed: {e} ({attempt}/{self.attempts})")
                await asyncio.sleep(0.5 * attempt)
                continue
            if response.is_success:
                return True
            logger.debug(f"Telemetry post to {route} answered {response.status_code} ({attempt}/{self.attempts})")
        return False

    async def _run(self):
        while True:
            try:
                route, event = await asyncio.wait_for(self.queue.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
            try:
                if not await self._post(route, event):
                    logger.warning(f"Giving up on {route} event after {self.attempts} attempts")
            finally:
                self.queue.task_done()

    async def shutdown(self, drain: bool = False, drain_timeout: float = 2.0):
        """Stop the worker, first waiting up to `drain_timeout` for queued events when `drain` is set"""
        if self._closed:
            return
        self._closed = True

        if drain and self._worker and not self.queue.empty():
            try:
                await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Telemetry drain timed out with {self.queue.qsize()} events left")

        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._http:
            await self._http.aclose()
            self._http = None
