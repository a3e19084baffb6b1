"""
Analysis Monitor Service

Keeps track of analyses currently in progress and reports on them
periodically: every tick it syncs with the analysis source of truth, logs
the tracked analyses, warns about stuck or long-running ones and drops the
stale ones.

Thresholds (seconds):
- stuck: no stage update for `stuck_threshold`, logged as a warning
- long running: started more than `long_running_threshold` ago
- stale: no stage update for `stale_threshold`, removed from tracking

Example Usage:
    monitor = AnalysisMonitor(source=db_source)
    await monitor.register("a1", user_id="u1", filename="call.mp3",
                           analysis_type="SALES")
    await monitor.update_stage("a1", AnalysisStage.TRANSCRIBING)
    await monitor.complete("a1", AnalysisStage.COMPLETED)

The application singleton `analysis_monitor` starts without a source:
this service owns no analysis records. The process hosting the analysis
workers feeds it, either by calling `register`/`update_stage`/`complete`
as jobs progress, or by attaching its persistence layer before startup:

    from callprep.services.analysis_monitor import analysis_monitor
    analysis_monitor.set_source(db_source)

Without either, `sync` is a no-op and the stats report nothing in progress.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, Protocol

from pydantic import BaseModel

from callprep.logger import logger
from callprep.settings import settings


class AnalysisStage(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    TRANSCRIBING = "TRANSCRIBING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


FINAL_STAGES = (AnalysisStage.COMPLETED, AnalysisStage.FAILED)


class AnalysisRecord(BaseModel):
    """An in-progress analysis, as known by the source of truth"""

    id: str
    user_id: str
    filename: str | None = None
    analysis_type: str


class AnalysisProgress(BaseModel):
    id: str
    user_id: str
    filename: str
    analysis_type: str
    request_id: str | None = None
    stage: AnalysisStage = AnalysisStage.PENDING
    start_time: float
    last_update_time: float


class LongestRunning(BaseModel):
    id: str
    filename: str
    elapsed_time: float


class MonitoringStats(BaseModel):
    total_in_progress: int
    by_stage: dict[str, int]
    longest_running: LongestRunning | None = None


class AnalysisSource(Protocol):
    async def list_in_progress(self) -> list[AnalysisRecord]:
        """Return the PENDING and PROCESSING analyses"""
        ...


class AnalysisMonitor:
    def __init__(
        self,
        source: AnalysisSource | None = None,
        interval: float = 60,
        stuck_threshold: float = 300,
        long_running_threshold: float = 900,
        stale_threshold: float = 1800,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.interval = interval
        self.stuck_threshold = stuck_threshold
        self.long_running_threshold = long_running_threshold
        self.stale_threshold = stale_threshold
        self.clock = clock
        self.logger = logger.bind(service="analysis_monitor")
        self._analyses: dict[str, AnalysisProgress] = {}
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    def set_source(self, source: AnalysisSource | None):
        self.source = source
        self.logger.info(
            "Analysis source attached" if source else "Analysis source detached"
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def register(
        self,
        analysis_id: str,
        user_id: str,
        filename: str,
        analysis_type: str,
        request_id: str | None = None,
    ):
        now = self.clock()
        async with self._lock:
            self._analyses[analysis_id] = AnalysisProgress(
                id=analysis_id,
                user_id=user_id,
                filename=filename,
                analysis_type=analysis_type,
                request_id=request_id,
                start_time=now,
                last_update_time=now,
            )
        self.logger.info(
            "Analysis registered",
            analysis_id=analysis_id,
            filename=filename,
            analysis_type=analysis_type,
            request_id=request_id,
        )

    async def update_stage(self, analysis_id: str, stage: AnalysisStage):
        async with self._lock:
            progress = self._analyses.get(analysis_id)
            if progress is None:
                return
            now = self.clock()
            progress.stage = stage
            progress.last_update_time = now
        self.logger.info(
            "Analysis stage updated",
            analysis_id=analysis_id,
            stage=stage.value,
            filename=progress.filename,
            elapsed_time=round(now - progress.start_time, 1),
        )

    async def complete(self, analysis_id: str, final_stage: AnalysisStage):
        if final_stage not in FINAL_STAGES:
            raise ValueError(f"{final_stage} is not a final stage")
        async with self._lock:
            progress = self._analyses.pop(analysis_id, None)
        if progress is None:
            return
        self.logger.info(
            f"Analysis {final_stage.value.lower()}",
            analysis_id=analysis_id,
            filename=progress.filename,
            final_stage=final_stage.value,
            total_time=round(self.clock() - progress.start_time, 1),
            analysis_type=progress.analysis_type,
            request_id=progress.request_id,
        )

    async def sync(self):
        """
        Reconcile tracked analyses with the source: add the in-progress ones
        we don't know about, drop the ones that are no longer in progress
        """
        if self.source is None:
            return
        try:
            records = await self.source.list_in_progress()
        except Exception:
            self.logger.exception("Error syncing analyses with source")
            return

        known = {record.id for record in records}
        now = self.clock()
        async with self._lock:
            for record in records:
                if record.id in self._analyses:
                    continue
                self._analyses[record.id] = AnalysisProgress(
                    id=record.id,
                    user_id=record.user_id,
                    filename=record.filename or "unknown",
                    analysis_type=record.analysis_type,
                    request_id="sync",
                    start_time=now,
                    last_update_time=now,
                )
            for analysis_id in list(self._analyses):
                if analysis_id not in known:
                    del self._analyses[analysis_id]

    async def check(self) -> list[str]:
        """
        Log every tracked analysis, warn about stuck and long-running ones,
        and drop stale ones. Return the ids removed as stale.
        """
        now = self.clock()
        async with self._lock:
            analyses = list(self._analyses.values())

        if not analyses:
            self.logger.debug("No analyses currently in progress")
            return []

        self.logger.info("Analyses in progress", count=len(analyses))
        stale = []
        for progress in analyses:
            elapsed = now - progress.start_time
            since_update = now - progress.last_update_time
            log = self.logger.bind(
                analysis_id=progress.id,
                filename=progress.filename,
                stage=progress.stage.value,
            )
            log.info(
                "Analysis in progress",
                elapsed_time=round(elapsed),
                time_since_update=round(since_update),
                analysis_type=progress.analysis_type,
                user_id=progress.user_id,
                request_id=progress.request_id,
            )
            if since_update > self.stuck_threshold:
                log.warning("Analysis may be stuck", time_since_update=round(since_update))
            if elapsed > self.long_running_threshold:
                log.warning("Long-running analysis detected", elapsed_time=round(elapsed))
            if since_update > self.stale_threshold:
                log.warning("Removing stale analysis", stale_time=round(since_update))
                stale.append(progress.id)

        async with self._lock:
            for analysis_id in stale:
                self._analyses.pop(analysis_id, None)

        self.logger.info("Stage distribution", **self._by_stage(analyses))
        return stale

    async def tick(self):
        await self.sync()
        await self.check()

    async def _run(self):
        while True:
            try:
                await self.tick()
            except Exception:
                self.logger.exception("Analysis monitor tick failed")
            await asyncio.sleep(self.interval)

    def start(self):
        if self.is_running:
            self.logger.warning("Analysis monitor already running")
            return
        self._task = asyncio.create_task(self._run())
        self.logger.info("Analysis monitor started", interval=self.interval)

    async def stop(self):
        if not self.is_running:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Analysis monitor stopped")

    @staticmethod
    def _by_stage(analyses: list[AnalysisProgress]) -> dict[str, int]:
        by_stage: dict[str, int] = {}
        for progress in analyses:
            by_stage[progress.stage.value] = by_stage.get(progress.stage.value, 0) + 1
        return by_stage

    def get_stats(self) -> MonitoringStats:
        now = self.clock()
        analyses = list(self._analyses.values())
        longest = max(analyses, key=lambda p: now - p.start_time, default=None)
        return MonitoringStats(
            total_in_progress=len(analyses),
            by_stage=self._by_stage(analyses),
            longest_running=LongestRunning(
                id=longest.id,
                filename=longest.filename,
                elapsed_time=now - longest.start_time,
            )
            if longest
            else None,
        )


analysis_monitor = AnalysisMonitor(
    interval=settings.ANALYSIS_MONITOR_INTERVAL,
    stuck_threshold=settings.ANALYSIS_STUCK_THRESHOLD,
    long_running_threshold=settings.ANALYSIS_LONG_RUNNING_THRESHOLD,
    stale_threshold=settings.ANALYSIS_STALE_THRESHOLD,
)
