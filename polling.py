import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Set

from api_client import ApiError
from notifications import Notifier

logger = logging.getLogger(__name__)


class StatsPoller:
    """Re-fetches dashboard statistics on a fixed interval.

    A tick does not wait for the previous one, so requests may overlap.
    Whichever response resolves last becomes the displayed state.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        notifier: Notifier,
        interval: float = 30.0,
        failure: str = "Failed to fetch dashboard data",
    ):
        self.fetch = fetch
        self.notifier = notifier
        self.interval = interval
        self.failure = failure
        self.state: Any = None
        self.updated_at: Optional[datetime] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def tick(self) -> None:
        try:
            data = await self.fetch()
        except ApiError as exc:
            self.notifier.error(exc.detail or self.failure)
            return
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("Unexpected stats payload: %s", exc)
            self.notifier.error(self.failure)
            return
        self.state = data
        self.updated_at = datetime.now(timezone.utc)

    def _spawn(self) -> asyncio.Task:
        task = asyncio.ensure_future(self.tick())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run(self) -> None:
        while True:
            logger.debug("stats poll tick")
            self._spawn()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if not self.running:
            self._loop_task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        # Stops scheduling; requests already issued still complete.
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def current(self) -> Any:
        """Latest state, fetching once if nothing has resolved yet."""
        if self.state is None:
            await self.tick()
        return self.state
