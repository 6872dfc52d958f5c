"""Bounded-concurrency cache warmer.

``BulkLoader.start`` fans a fetch out over many ids on a small thread pool
and reports each completion as a ``Progress`` event.  Results are not
returned: the fetch is expected to write them into the cache.
"""

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed

from lazykv.constants import MAX_PARALLELISM
from lazykv.models import FetchError, FetchResult, Progress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Progress], None]

_SKIPPED = object()


class BulkLoad:
    """Handle on a running bulk load.

    Iterating yields ``Progress`` events in completion order until the load
    finishes or is cancelled.  Each handle can be iterated once.
    """

    def __init__(self, total: int, skipped: int) -> None:
        self.total = total
        self.skipped = skipped
        self._events: queue.Queue[Progress | None] = queue.Queue()
        self._cancel = threading.Event()
        self._done = threading.Event()

    def __iter__(self) -> Iterator[Progress]:
        while True:
            event = self._events.get()
            if event is None:
                return
            yield event

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Skip every fetch that has not started yet; running ones finish."""
        if not self._cancel.is_set():
            logger.info("bulk load cancelled")
        self._cancel.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the load is over. Returns False on timeout."""
        return self._done.wait(timeout)

    def _emit(self, event: Progress) -> None:
        self._events.put(event)

    def _finish(self) -> None:
        self._events.put(None)
        self._done.set()


class BulkLoader:
    """Runs fetches for many ids with at most ``max_workers`` in flight.

    Args:
        max_workers: Concurrency cap, at least 1.
    """

    def __init__(self, max_workers: int = MAX_PARALLELISM) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers

    def start(
        self,
        ids: Iterable[str],
        fetch: Callable[[str], FetchResult],
        is_cached: Callable[[str], bool],
        on_progress: ProgressCallback | None = None,
    ) -> BulkLoad:
        """Begin loading every id of *ids* that *is_cached* reports missing.

        *on_progress* is called from a background thread.
        """
        pending: list[str] = []
        skipped = 0
        for item in dict.fromkeys(ids):
            if is_cached(item):
                skipped += 1
            else:
                pending.append(item)

        load = BulkLoad(total=len(pending), skipped=skipped)
        if not pending:
            self._report(load, Progress(0, 0, None), on_progress)
            load._finish()
            return load

        logger.debug("bulk load of %d ids (%d already cached)", len(pending), skipped)
        thread = threading.Thread(
            target=self._coordinate,
            args=(load, pending, fetch, on_progress),
            name="bulk-load",
            daemon=True,
        )
        thread.start()
        return load

    def run(
        self,
        ids: Iterable[str],
        fetch: Callable[[str], FetchResult],
        is_cached: Callable[[str], bool],
        on_progress: ProgressCallback | None = None,
    ) -> list[Progress]:
        """Blocking form of ``start``; returns every progress event."""
        return list(self.start(ids, fetch, is_cached, on_progress))

    def _coordinate(
        self,
        load: BulkLoad,
        pending: list[str],
        fetch: Callable[[str], FetchResult],
        on_progress: ProgressCallback | None,
    ) -> None:
        def task(item: str):
            if load.cancelled:
                return _SKIPPED
            return fetch(item)

        completed = 0
        try:
            workers = min(self.max_workers, len(pending))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk") as executor:
                future_to_id = {executor.submit(task, item): item for item in pending}
                for future in as_completed(future_to_id):
                    item = future_to_id[future]
                    try:
                        result = future.result()
                    except Exception as exc:
                        logger.exception("bulk fetch of %s raised", item)
                        error: FetchError | None = FetchError.from_exception(exc)
                    else:
                        if result is _SKIPPED:
                            continue
                        error = result.error
                    completed += 1
                    self._report(load, Progress(completed, load.total, item, error), on_progress)
        finally:
            load._finish()
        if load.cancelled:
            logger.info("bulk load stopped after %d of %d", completed, load.total)

    @staticmethod
    def _report(load: BulkLoad, event: Progress, on_progress: ProgressCallback | None) -> None:
        load._emit(event)
        if on_progress is not None:
            on_progress(event)
