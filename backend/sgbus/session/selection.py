"""
Watched stops and their arrivals, with manual and timed refresh.

Refreshes never overlap: a refresh requested while one is in flight is skipped.
A service filter change during a refresh makes that refresh run once more.
A result that arrives for a stop removed mid-flight is discarded.
"""
import asyncio
import contextlib
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import NamedTuple

from sgbus.arrivals.models import ArrivalPrediction
from sgbus.arrivals.service import ArrivalResolver
from sgbus.data.stops import StopRecord
from sgbus.lta.client import ProviderError

logger = logging.getLogger(__name__)

AUTO_REFRESH_INTERVAL_SECONDS = 30.0


class StopArrivals(NamedTuple):
    stop: StopRecord
    arrivals: list[ArrivalPrediction]
    error: str | None
    updated_at: datetime


class SelectionSession:
    def __init__(self, resolver: ArrivalResolver, interval_seconds: float = AUTO_REFRESH_INTERVAL_SECONDS):
        self._resolver = resolver
        self._interval = interval_seconds
        self._selected: dict[str, StopRecord] = {}
        self._results: dict[str, StopArrivals] = {}
        self._service_filter: tuple[str, ...] = ()
        self._refresh_lock = asyncio.Lock()
        self._rerun_requested = False
        self._auto_task: asyncio.Task | None = None
        self.last_updated: datetime | None = None

    @property
    def selected_stops(self) -> list[StopRecord]:
        return list(self._selected.values())

    @property
    def results(self) -> list[StopArrivals]:
        """Latest arrivals per selected stop, in selection order."""
        return [self._results[code] for code in self._selected if code in self._results]

    @property
    def service_filter(self) -> tuple[str, ...]:
        return self._service_filter

    @property
    def auto_refreshing(self) -> bool:
        return self._auto_task is not None and not self._auto_task.done()

    async def add_stop(self, stop: StopRecord) -> bool:
        """Select a stop and fetch its arrivals. Returns False if it was already selected."""
        if stop.stop_code in self._selected:
            return False
        self._selected[stop.stop_code] = stop
        await self.fetch_stop(stop)
        return True

    def remove_stop(self, stop_code: str) -> bool:
        if stop_code not in self._selected:
            return False
        del self._selected[stop_code]
        self._results.pop(stop_code, None)
        return True

    async def fetch_stop(self, stop: StopRecord) -> StopArrivals | None:
        """Fetch one stop. Returns None when the stop was deselected before the result came back."""
        error: str | None = None
        try:
            arrivals = await asyncio.to_thread(
                self._resolver.resolve, stop.stop_code, None, self._service_filter
            )
        except ProviderError as e:
            logger.warning(
                "telemetry session_fetch_failed stop_code=%s error=%s",
                stop.stop_code,
                str(e),
                extra={"stop_code": stop.stop_code, "error": str(e)},
            )
            arrivals = []
            error = f"No bus data available for {stop.stop_name}"
        if stop.stop_code not in self._selected:
            logger.info("telemetry session_stale_result_dropped stop_code=%s", stop.stop_code)
            return None
        result = StopArrivals(stop=stop, arrivals=arrivals, error=error, updated_at=datetime.now(timezone.utc))
        self._results[stop.stop_code] = result
        return result

    async def refresh(self) -> bool:
        """Re-fetch every selected stop in turn. Returns False if skipped because one is running."""
        if self._refresh_lock.locked():
            logger.info("telemetry session_refresh_skipped reason=in_flight")
            return False
        async with self._refresh_lock:
            while True:
                self._rerun_requested = False
                for stop in list(self._selected.values()):
                    await self.fetch_stop(stop)
                if not self._rerun_requested:
                    break
                logger.info("telemetry session_refresh_rerun reason=filter_changed")
            self.last_updated = datetime.now(timezone.utc)
        return True

    async def set_service_filter(self, services: Iterable[str]) -> None:
        """Show only the given service numbers (empty shows all) and re-fetch."""
        self._service_filter = tuple(s.strip() for s in services if s.strip())
        # Picked up by the refresh in flight, if any
        self._rerun_requested = True
        await self.refresh()

    def start_auto_refresh(self) -> None:
        if self.auto_refreshing:
            return
        self._auto_task = asyncio.create_task(self._auto_refresh_loop())

    async def stop_auto_refresh(self) -> None:
        task, self._auto_task = self._auto_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _auto_refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if not self._selected:
                continue
            try:
                await self.refresh()
            except Exception:
                logger.exception("telemetry session_auto_refresh_failed")
