import asyncio
from datetime import datetime, timedelta

from clippyd.cleanup import CleanupResult, CleanupScheduler
from clippyd.config import merge_config
from clippyd.database import DatabaseSessionGenerator
from clippyd.store import ContentStore, utc_now


def make_store(tmp_path, logger, clock) -> ContentStore:
    store = ContentStore(
        DatabaseSessionGenerator(f"sqlite:///{(tmp_path / 'cleanup.db').as_posix()}"),
        logger,
        clock=clock,
    )
    store.open()
    return store


def fill(store: ContentStore, count: int, prefix: str = "e") -> None:
    for i in range(count):
        store.insert_or_touch(f"{prefix}{i}", b"c", b"\x00" * 12, "text", 1)


def test_run_applies_age_then_count(tmp_path, logger):
    now = [datetime(2024, 6, 1)]
    store = make_store(tmp_path, logger, lambda: now[0])
    try:
        fill(store, 3, "old")
        now[0] += timedelta(days=40)
        fill(store, 5, "new")

        config = merge_config(None, {"maxHistoryAge": 30, "maxHistoryEntries": 2})
        result = CleanupScheduler(store, config, logger).run()

        assert result == CleanupResult(aged=3, counted=3)
        assert store.get_count() == 2
    finally:
        store.close()


def test_update_config_changes_thresholds(tmp_path, logger):
    store = make_store(tmp_path, logger, utc_now)
    try:
        fill(store, 4)
        scheduler = CleanupScheduler(store, merge_config(None, {}), logger)
        assert scheduler.run() == CleanupResult(aged=0, counted=0)

        scheduler.update_config(merge_config(None, {"maxHistoryEntries": 1}))
        assert scheduler.run().counted == 3
    finally:
        store.close()


def test_start_runs_immediately_and_periodically(tmp_path, logger):
    store = make_store(tmp_path, logger, utc_now)
    fill(store, 3)
    config = merge_config(None, {"maxHistoryEntries": 2})

    async def scenario():
        scheduler = CleanupScheduler(store, config, logger, interval=0.02)
        scheduler.start()
        assert store.get_count() == 2
        fill(store, 3, "later")
        await asyncio.sleep(0.1)
        await scheduler.stop()

    try:
        asyncio.run(scenario())
        assert store.get_count() == 2
    finally:
        store.close()
