"""
Metrics collection for the site crawler.
"""

import time
import logging
from typing import Dict, Optional, Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram
from prometheus_client import start_http_server


class MetricsCollector:
    """Owns the Prometheus metrics of one crawl, in a private registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()

        self.urls_crawled = Counter(
            'crawler_urls_crawled_total',
            'Total number of URLs crawled',
            registry=self.registry
        )
        self.errors = Counter(
            'crawler_errors_total',
            'Total number of crawl errors',
            ['error_type'],
            registry=self.registry
        )
        self.links_discovered = Counter(
            'crawler_links_discovered_total',
            'Total number of new links discovered',
            registry=self.registry
        )
        self.fetch_time = Histogram(
            'crawler_fetch_time_seconds',
            'Time spent fetching and parsing a page',
            registry=self.registry
        )
        self.pending = Gauge(
            'crawler_pending_urls',
            'Number of URLs queued or in flight',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'crawler_active_workers',
            'Number of workers currently crawling a URL',
            registry=self.registry
        )

    def start_server(self, port: int):
        """Expose the metrics over HTTP."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def get_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Read a sample value, 0 if it was never recorded."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0


class CrawlerMonitor:
    """High-level monitoring interface for the crawl engine."""

    def __init__(self, metrics_collector: MetricsCollector):
        self.metrics = metrics_collector
        self.start_time = time.time()

    def record_url_crawled(self, fetch_time: float, new_links: int):
        self.metrics.urls_crawled.inc()
        self.metrics.fetch_time.observe(fetch_time)
        self.metrics.links_discovered.inc(new_links)

    def record_error(self, error_type: str):
        self.metrics.errors.labels(error_type=error_type).inc()

    def update_pending(self, count: int):
        self.metrics.pending.set(count)

    def update_active_workers(self, count: int):
        self.metrics.active_workers.set(count)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the recorded metrics."""
        runtime = time.time() - self.start_time
        crawled = self.metrics.get_value('crawler_urls_crawled_total')

        return {
            'runtime_seconds': runtime,
            'urls_crawled': crawled,
            'links_discovered': self.metrics.get_value('crawler_links_discovered_total'),
            'fetch_errors': self.metrics.get_value('crawler_errors_total', {'error_type': 'fetch'}),
            'urls_per_second': crawled / runtime if runtime > 0 else 0,
        }
