"""Unit tests for the bounded-concurrency bulk loader."""

import threading
import time

import pytest

from lazykv.bulk import BulkLoader
from lazykv.models import ErrorKind, FetchError, FetchResult, Progress


class Recorder:
    """Fetch function that records ids and tracks peak concurrency."""

    def __init__(self, delay=0.0, fail=()):
        self.delay = delay
        self.fail = set(fail)
        self.calls: list[str] = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, item):
        with self._lock:
            self.calls.append(item)
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if item in self.fail:
                return FetchResult.failure(FetchError(ErrorKind.ACCESS_DENIED, f"{item} denied"))
            return FetchResult.success([])
        finally:
            with self._lock:
                self.active -= 1


def never_cached(item):
    return False


class TestConstruction:
    def test_zero_workers_rejected(self):
        with pytest.raises(ValueError):
            BulkLoader(max_workers=0)


class TestRun:
    def test_every_missing_id_fetched_once(self):
        """
        Given five ids, two of them cached
        When the bulk load runs
        Then only the three missing ids are fetched
        """
        cached = {"s1", "s3"}
        fetch = Recorder()

        events = BulkLoader().run(["s1", "s2", "s3", "s4", "s5"], fetch, cached.__contains__)

        assert sorted(fetch.calls) == ["s2", "s4", "s5"]
        assert [e.completed for e in events] == [1, 2, 3]
        assert all(e.total == 3 for e in events)
        assert events[-1].finished

    def test_fully_cached_reports_single_empty_event(self):
        """
        Given every id already cached
        When the bulk load runs
        Then no fetch happens and one Progress(0, 0, None) is reported
        """
        fetch = Recorder()
        seen: list[Progress] = []

        events = BulkLoader().run(["s1", "s2"], fetch, lambda item: True, on_progress=seen.append)

        assert fetch.calls == []
        assert events == [Progress(0, 0, None)]
        assert seen == events

    def test_duplicate_ids_fetched_once(self):
        fetch = Recorder()
        events = BulkLoader().run(["s1", "s1", "s2"], fetch, never_cached)
        assert sorted(fetch.calls) == ["s1", "s2"]
        assert events[-1].total == 2

    def test_second_run_is_idempotent(self):
        """
        Given a first run that populated the cache
        When the same ids run again
        Then nothing is fetched the second time
        """
        cache: set[str] = set()
        fetch = Recorder()

        def fetch_and_store(item):
            cache.add(item)
            return fetch(item)

        loader = BulkLoader()
        loader.run(["s1", "s2"], fetch_and_store, cache.__contains__)
        loader.run(["s1", "s2"], fetch_and_store, cache.__contains__)

        assert sorted(fetch.calls) == ["s1", "s2"]

    def test_concurrency_is_bounded(self):
        fetch = Recorder(delay=0.02)
        BulkLoader(max_workers=2).run([f"s{i}" for i in range(8)], fetch, never_cached)
        assert len(fetch.calls) == 8
        assert fetch.peak <= 2

    def test_errors_reported_per_id(self):
        """
        Given one id whose fetch fails
        When the bulk load runs
        Then its Progress carries the error and the others complete
        """
        fetch = Recorder(fail={"s2"})

        events = BulkLoader().run(["s1", "s2", "s3"], fetch, never_cached)

        failed = [e for e in events if e.error is not None]
        assert [e.current_id for e in failed] == ["s2"]
        assert failed[0].error.kind is ErrorKind.ACCESS_DENIED
        assert events[-1].completed == 3

    def test_raising_fetch_becomes_error(self):
        def boom(item):
            raise RuntimeError("kaboom")

        events = BulkLoader().run(["s1"], boom, never_cached)

        assert events[0].error.kind is ErrorKind.UNKNOWN
        assert "kaboom" in events[0].error.message

    def test_callback_sees_monotonic_completed(self):
        seen: list[Progress] = []
        BulkLoader(max_workers=3).run(
            [f"s{i}" for i in range(6)], Recorder(delay=0.005), never_cached, on_progress=seen.append
        )
        assert [e.completed for e in seen] == list(range(1, 7))


class TestCancel:
    def test_cancel_skips_queued_fetches(self):
        """
        Given a single worker and ten slow ids
        When the load is cancelled after the first completion
        Then the remaining queued ids are never fetched
        """
        fetch = Recorder(delay=0.05)
        load = BulkLoader(max_workers=1).start([f"s{i}" for i in range(10)], fetch, never_cached)

        events = []
        for event in load:
            events.append(event)
            load.cancel()

        assert load.wait(1.0)
        assert load.done
        assert load.cancelled
        assert len(fetch.calls) < 10
        assert len(events) == len(fetch.calls)

    def test_start_returns_before_fetching_finishes(self):
        release = threading.Event()

        def blocked(item):
            release.wait(1.0)
            return FetchResult.success([])

        load = BulkLoader().start(["s1"], blocked, never_cached)
        assert not load.done
        release.set()
        assert load.wait(1.0)
