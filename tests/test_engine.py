"""
Tests for the crawl engine, driven by an in-memory link graph.
"""

import asyncio
import random
from collections import Counter
from urllib.parse import urlsplit

import pytest

from sitecrawler.crawler.engine import CrawlEngine, PendingCounter, run_crawl
from sitecrawler.crawler.fetcher import FetchError
from sitecrawler.utils.monitoring import CrawlerMonitor, MetricsCollector


class FakeFetcher:
    """Serves a fixed link graph and deduplicates like the HTTP fetcher."""

    def __init__(self, start_url, host='localhost'):
        self.host = host
        self.link_map = {}
        self.visited = {start_url}
        self.fetched = Counter()

    def add_links(self, url, followups):
        self.link_map[url] = followups

    async def fetch_links(self, url):
        self.fetched[url] += 1
        # Give other workers a chance to interleave
        await asyncio.sleep(0)

        links = []
        for link in self.link_map.get(url, []):
            parsed = urlsplit(link)
            if parsed.netloc != self.host or link in self.visited:
                continue
            self.visited.add(link)
            links.append(parsed)
        return links


class FailingFetcher(FakeFetcher):
    def __init__(self, start_url, failures):
        super().__init__(start_url)
        self.failures = failures

    async def fetch_links(self, url):
        if url in self.failures:
            self.fetched[url] += 1
            raise self.failures[url]
        return await super().fetch_links(url)


def crawl(seed, workers, fetcher, **kwargs):
    return asyncio.wait_for(CrawlEngine(fetcher, workers, **kwargs).run(seed), timeout=10)


async def test_simple_crawl():
    ff = FakeFetcher("http://localhost/")
    ff.add_links("http://localhost/", [
        "http://localhost/sub1/",
        "http://localhost/sub2/index.php",
    ])
    ff.add_links("http://localhost/sub1/", [
        "http://localhost/sub1/",
        "http://localhost/sub2/image.jpg",
    ])
    ff.add_links("http://localhost/sub2/index.php", [
        "http://localhost/sub3/",
        "http://someotherhost/foo.html",
    ])

    stats = await crawl("http://localhost/", 1, ff)

    assert ff.fetched == Counter({
        "http://localhost/": 1,
        "http://localhost/sub1/": 1,
        "http://localhost/sub2/index.php": 1,
        "http://localhost/sub2/image.jpg": 1,
        "http://localhost/sub3/": 1,
    })
    assert "http://someotherhost/foo.html" not in ff.fetched
    assert stats.urls_crawled == 5
    assert stats.links_discovered == 4


async def test_seed_without_links_terminates():
    ff = FakeFetcher("http://localhost/")

    stats = await crawl("http://localhost/", 3, ff)

    assert ff.fetched == Counter({"http://localhost/": 1})
    assert stats.urls_crawled == 1


@pytest.mark.parametrize("workers", [1, 2, 8, 32])
async def test_random_cyclic_graph_visits_every_node_once(workers):
    rng = random.Random(1234)
    nodes = [f"http://localhost/page/{i}" for i in range(300)]
    ff = FakeFetcher(nodes[0])
    graph = {}
    for node in nodes:
        graph[node] = rng.sample(nodes, rng.randint(0, 6)) + ["http://elsewhere/x"]
        ff.add_links(node, graph[node])

    reachable = {nodes[0]}
    frontier = [nodes[0]]
    while frontier:
        for link in graph[frontier.pop()]:
            if link in graph and link not in reachable:
                reachable.add(link)
                frontier.append(link)

    await crawl(nodes[0], workers, ff)

    assert set(ff.fetched) == reachable
    assert all(count == 1 for count in ff.fetched.values())


async def test_wide_page_does_not_block_single_worker():
    ff = FakeFetcher("http://localhost/")
    children = [f"http://localhost/child/{i}" for i in range(100)]
    ff.add_links("http://localhost/", children)

    stats = await crawl("http://localhost/", 1, ff)

    assert stats.urls_crawled == 101


async def test_fetch_errors_do_not_abort_crawl(caplog):
    ff = FailingFetcher("http://localhost/", {
        "http://localhost/broken": FetchError("http://localhost/broken", "Client error: boom"),
        "http://localhost/buggy": RuntimeError("unexpected"),
    })
    ff.add_links("http://localhost/", [
        "http://localhost/broken",
        "http://localhost/buggy",
        "http://localhost/fine",
    ])
    ff.add_links("http://localhost/fine", ["http://localhost/deeper"])
    metrics = MetricsCollector()

    stats = await crawl("http://localhost/", 2, ff, monitor=CrawlerMonitor(metrics))

    assert set(ff.fetched) == {
        "http://localhost/",
        "http://localhost/broken",
        "http://localhost/buggy",
        "http://localhost/fine",
        "http://localhost/deeper",
    }
    assert stats.errors == 2
    assert stats.urls_crawled == 3
    assert metrics.get_value('crawler_errors_total', {'error_type': 'fetch'}) == 1
    assert metrics.get_value('crawler_errors_total', {'error_type': 'unexpected'}) == 1
    assert "Error finding links in URL http://localhost/broken" in caplog.text


async def test_metrics_are_recorded():
    ff = FakeFetcher("http://localhost/")
    ff.add_links("http://localhost/", ["http://localhost/a", "http://localhost/b"])
    metrics = MetricsCollector()
    monitor = CrawlerMonitor(metrics)

    await crawl("http://localhost/", 2, ff, monitor=monitor)

    assert metrics.get_value('crawler_urls_crawled_total') == 3
    assert metrics.get_value('crawler_links_discovered_total') == 2
    assert metrics.get_value('crawler_pending_urls') == 0
    assert metrics.get_value('crawler_active_workers') == 0
    assert monitor.get_summary()['urls_crawled'] == 3


async def test_workers_log_with_their_id(caplog):
    caplog.set_level("INFO")
    ff = FakeFetcher("http://localhost/")

    await crawl("http://localhost/", 1, ff)

    assert "worker-0: Crawling http://localhost/" in caplog.text


@pytest.mark.parametrize("workers", [0, -1])
def test_invalid_worker_count(workers):
    with pytest.raises(ValueError):
        CrawlEngine(FakeFetcher("http://localhost/"), workers)


async def test_run_crawl():
    ff = FakeFetcher("http://localhost/")
    ff.add_links("http://localhost/", ["http://localhost/a"])

    stats = await asyncio.wait_for(run_crawl("http://localhost/", 2, ff), timeout=10)

    assert stats.urls_crawled == 2


async def test_run_crawl_rejects_invalid_worker_count():
    with pytest.raises(ValueError):
        await run_crawl("http://localhost/", 0, FakeFetcher("http://localhost/"))


async def test_stop_cancels_hung_crawl():
    started = asyncio.Event()

    class HangingFetcher:
        async def fetch_links(self, url):
            started.set()
            await asyncio.Event().wait()

    engine = CrawlEngine(HangingFetcher(), 2)
    task = asyncio.create_task(engine.run("http://localhost/"))
    await asyncio.wait_for(started.wait(), timeout=5)

    engine.stop()
    stats = await asyncio.wait_for(task, timeout=5)

    assert stats.urls_crawled == 0
    assert engine.workers == []


async def test_pending_counter():
    counter = PendingCounter()
    counter.add(2)

    waiter = asyncio.create_task(counter.wait())
    counter.done()
    await asyncio.sleep(0)
    assert not waiter.done()

    counter.done()
    await asyncio.wait_for(waiter, timeout=1)
    assert counter.count == 0


def test_pending_counter_never_goes_negative():
    counter = PendingCounter()

    with pytest.raises(ValueError):
        counter.done()
    with pytest.raises(ValueError):
        counter.add(-1)
