"""
Crawl engine that distributes URLs over a fixed pool of workers and detects
when the reachable graph has been exhausted.
"""

import asyncio
import logging
import time
from typing import List, Optional, Set
from dataclasses import dataclass
from urllib.parse import SplitResult

from .fetcher import FetchError, LinkFetcher
from ..utils.logger import CrawlerLogAdapter, get_crawler_logger
from ..utils.monitoring import CrawlerMonitor, MetricsCollector


# Queue sentinel telling a worker there is no more work
_CLOSED = None


@dataclass
class CrawlStats:
    """Statistics for a crawl run."""
    start_time: float
    urls_crawled: int = 0
    errors: int = 0
    links_discovered: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.urls_crawled / elapsed_minutes if elapsed_minutes > 0 else 0


class PendingCounter:
    """
    Counts queued plus in-flight work items.

    Behaves like a wait group: wait() returns once the count drops back to
    zero after having been raised.
    """

    def __init__(self):
        self._count = 0
        self._zero = asyncio.Event()

    @property
    def count(self) -> int:
        return self._count

    def add(self, n: int = 1):
        if n < 0:
            raise ValueError("pending count can only be raised by add()")
        self._count += n

    def done(self):
        if self._count == 0:
            raise ValueError("pending count would go negative")
        self._count -= 1
        if self._count == 0:
            self._zero.set()

    async def wait(self):
        await self._zero.wait()


class CrawlEngine:
    """
    Runs a crawl from one seed URL with a fixed number of workers.

    Workers share a bounded queue of URL strings. Links found on a page are
    counted as pending before the page itself is marked done, then handed to
    a dispatch task that feeds them into the queue, so a full queue never
    blocks a worker. Once nothing is pending the queue is closed and the
    workers exit.
    """

    def __init__(self, fetcher: LinkFetcher, worker_count: int,
                 monitor: Optional[CrawlerMonitor] = None):
        if worker_count < 1:
            raise ValueError(f"worker_count must be at least 1, got {worker_count}")

        self.fetcher = fetcher
        self.worker_count = worker_count
        self.monitor = monitor or CrawlerMonitor(MetricsCollector())
        self.logger = logging.getLogger(__name__)

        self.stats = CrawlStats(start_time=time.time())
        self.queue: Optional[asyncio.Queue] = None
        self.pending: Optional[PendingCounter] = None
        self.workers: List[asyncio.Task] = []
        self._dispatchers: Set[asyncio.Task] = set()
        self._active_workers = 0
        self._closed = False

    async def run(self, seed_url: str) -> CrawlStats:
        """
        Crawl everything reachable from seed_url.

        Returns when every discovered URL has been processed, or when
        stop() is called.
        """
        if self.workers:
            raise RuntimeError("Crawl engine is already running")

        self.stats = CrawlStats(start_time=time.time())
        self.queue = asyncio.Queue(maxsize=self.worker_count)
        self.pending = PendingCounter()
        self._closed = False

        self.pending.add(1)
        self.queue.put_nowait(seed_url)
        self.monitor.update_pending(self.pending.count)

        self.workers = [
            asyncio.create_task(self._worker(i))
            for i in range(self.worker_count)
        ]
        observer = asyncio.create_task(self._close_when_done())

        self.logger.info(f"Started crawl of {seed_url} with {self.worker_count} workers")

        try:
            await asyncio.gather(*self.workers, return_exceptions=True)
        finally:
            observer.cancel()
            for task in self.workers + list(self._dispatchers):
                task.cancel()
            await asyncio.gather(observer, *self.workers, *self._dispatchers,
                                 return_exceptions=True)
            self.workers = []
            self._dispatchers.clear()

        self._log_final_stats()
        return self.stats

    def stop(self):
        """Abort the running crawl; run() returns once the workers are cancelled."""
        if not self.workers:
            return
        self.logger.info("Stopping crawl...")
        for worker in self.workers:
            worker.cancel()

    async def _worker(self, worker_id: int):
        """Process URLs from the queue until it is closed."""
        log = get_crawler_logger(__name__, worker=worker_id)

        while True:
            url = await self.queue.get()
            if url is _CLOSED:
                break

            self._active_workers += 1
            self.monitor.update_active_workers(self._active_workers)
            try:
                links = await self._crawl(url, log)
                self._dispatch(links)
            finally:
                self._active_workers -= 1
                self.monitor.update_active_workers(self._active_workers)
                self.pending.done()
                self.monitor.update_pending(self.pending.count)

        log.debug("Queue closed, exiting")

    async def _crawl(self, url: str, log: CrawlerLogAdapter) -> List[SplitResult]:
        """Fetch the links of one URL; failures yield no links."""
        log.info(f"Crawling {url}")
        start_time = time.time()

        try:
            links = await self.fetcher.fetch_links(url)
        except FetchError as e:
            log.warning(f"Error finding links in URL {url}: {e.reason}")
            self._record_error('fetch')
            return []
        except Exception as e:
            log.error(f"Unexpected error crawling {url}: {e}", exc_info=True)
            self._record_error('unexpected')
            return []

        self.stats.urls_crawled += 1
        self.stats.links_discovered += len(links)
        self.monitor.record_url_crawled(time.time() - start_time, len(links))

        log.info(f"Done searching in {url}, {len(links)} new links")
        return links

    def _dispatch(self, links: List[SplitResult]):
        """Count links as pending and feed them to the queue in the background."""
        if not links:
            return

        self.pending.add(len(links))
        self.monitor.update_pending(self.pending.count)

        task = asyncio.create_task(self._push_links([link.geturl() for link in links]))
        self._dispatchers.add(task)
        task.add_done_callback(self._dispatchers.discard)

    async def _push_links(self, urls: List[str]):
        # Blocks while the queue is full
        for url in urls:
            await self.queue.put(url)

    async def _close_when_done(self):
        await self.pending.wait()
        self._close()

    def _close(self):
        """Wake every worker with the close sentinel. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        # Nothing is pending, so the queue is empty and has room for one
        # sentinel per worker
        for _ in range(self.worker_count):
            self.queue.put_nowait(_CLOSED)

    def _record_error(self, error_type: str):
        self.stats.errors += 1
        self.monitor.record_error(error_type)

    def _log_final_stats(self):
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Total URLs crawled: {self.stats.urls_crawled}")
        self.logger.info(f"Links discovered: {self.stats.links_discovered}")
        self.logger.info(f"Errors: {self.stats.errors}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"Average rate: {self.stats.pages_per_minute:.1f} pages/min")


async def run_crawl(seed_url: str, worker_count: int, fetcher: LinkFetcher) -> CrawlStats:
    """Crawl from seed_url with worker_count workers and wait for completion."""
    engine = CrawlEngine(fetcher, worker_count)
    return await engine.run(seed_url)
