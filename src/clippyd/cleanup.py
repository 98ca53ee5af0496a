# region Docstring
"""
clippyd.cleanup
Periodic application of the history retention policies.
Overview:
- Bounds how much history is kept on disk, by age and by count, on a fixed period.
Contents:
- Models:
    - CleanupResult: entries removed by age and by count in one run.
- Classes:
    - CleanupScheduler:
        - run() -> CleanupResult
        - start(): run now, then every interval
        - stop()
        - update_config(config): thresholds for the next run
Design Notes:
- Age pruning runs first so the count limit is applied to what is left.
- A store error in a scheduled run is logged; the next run retries. The first run,
    made by start(), is guarded the same way so a damaged database does not block
    startup.
"""
# endregion
# region Imports
import asyncio
from logging import Logger as T_Logger
from typing import NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError

from clippyd.config import ClippyConfig
from clippyd.store import ContentStore

# endregion
# region CleanupScheduler


class CleanupResult(NamedTuple):
    aged: int
    counted: int


class CleanupScheduler:
    """
    Runs prune_by_age then prune_by_count once at start and then on an interval.

    Attributes:
        __store (ContentStore): The history store to prune.
        __config (ClippyConfig): Source of the retention thresholds.
        __interval (float): Seconds between runs.
        __logger (Logger): The logger instance.
    """

    __store: ContentStore
    __config: ClippyConfig
    __interval: float
    __logger: T_Logger
    __task: Optional[asyncio.Task]

    def __init__(
        self,
        store: ContentStore,
        config: ClippyConfig,
        logger: T_Logger,
        interval: float = 60.0,
    ) -> None:
        self.__store = store
        self.__config = config
        self.__interval = interval
        self.__logger = logger.getChild(self.__class__.__name__)
        self.__task = None

    def update_config(self, config: ClippyConfig) -> None:
        """Thresholds apply from the next run."""
        self.__config = config

    def run(self) -> CleanupResult:
        aged = self.__store.prune_by_age(self.__config.max_history_age_days)
        counted = self.__store.prune_by_count(self.__config.max_history_entries)
        if aged > 0 or counted > 0:
            self.__logger.info("Pruned %d by age, %d by count.", aged, counted)
        return CleanupResult(aged=aged, counted=counted)

    def _safe_run(self) -> None:
        try:
            self.run()
        except SQLAlchemyError as e:
            self.__logger.error("Cleanup run failed, retrying next interval: %s", e)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.__interval)
            self._safe_run()

    def start(self) -> None:
        """Run once now, then every interval. Requires a running event loop."""
        if self.__task is not None:
            return
        self._safe_run()
        self.__task = asyncio.create_task(self._run(), name="history-cleanup")

    async def stop(self) -> None:
        if self.__task is None:
            return
        task, self.__task = self.__task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# endregion

__all__ = ["CleanupResult", "CleanupScheduler"]
