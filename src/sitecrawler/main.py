#!/usr/bin/env python3
"""
Main entry point for the site crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import List, Optional

from . import __version__
from .crawler.engine import CrawlEngine
from .crawler.fetcher import HTTPLinkFetcher, HTTPTransport
from .utils.config import LOG_LEVELS, Config, ConfigError, load_config
from .utils.logger import log_system_info, setup_logging
from .utils.monitoring import CrawlerMonitor, MetricsCollector


class CrawlerApp:
    """Main application class for the site crawler."""

    def __init__(self, config: Config):
        self.config = config
        self.engine: Optional[CrawlEngine] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Stop the crawl on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._handle_signal, signum)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                pass

    def remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except NotImplementedError:
                pass

    def _handle_signal(self, signum: int):
        self.logger.info(f"Received signal {signum}, initiating shutdown...")
        if self.engine:
            self.engine.stop()

    async def run(self) -> int:
        """Run the crawler."""
        crawler_config = self.config.crawler

        self.logger.info(f"Start crawl of {crawler_config.seed_url}")
        self.logger.info(f"Workers: {crawler_config.workers}")

        metrics = MetricsCollector()
        if self.config.monitoring.metrics_enabled:
            metrics.start_server(self.config.monitoring.prometheus_port)
        monitor = CrawlerMonitor(metrics)

        async with HTTPTransport(
            user_agent=crawler_config.user_agent,
            request_timeout=crawler_config.request_timeout,
            max_content_bytes=crawler_config.max_content_bytes
        ) as transport:
            fetcher = HTTPLinkFetcher(crawler_config.seed_url, transport)
            self.engine = CrawlEngine(fetcher, crawler_config.workers, monitor)
            self.setup_signal_handlers()
            try:
                await self.engine.run(crawler_config.seed_url)
            finally:
                self.remove_signal_handlers()

            self.logger.info(f"Transport stats: {transport.get_stats()}")
            self.logger.info(f"Distinct URLs discovered: {len(fetcher.visited)}")

        self.logger.info(f"Crawl summary: {monitor.get_summary()}")

        self.logger.info("Crawling ended.")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitecrawler",
        description="Crawl every page of a host reachable from a start URL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sitecrawler --url http://localhost/               # Crawl with 4 workers
  sitecrawler --url http://localhost/ --workers 16  # Crawl with 16 workers
  sitecrawler --config config.yaml                 # Read settings from a file
        """
    )

    parser.add_argument(
        '--url',
        help='Start URL of the crawl'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help='Number of workers (default: 4)'
    )

    parser.add_argument(
        '--config',
        help='Path to a YAML configuration file'
    )

    parser.add_argument(
        '--log-level',
        choices=LOG_LEVELS,
        help='Log level (default: INFO)'
    )

    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit logs as JSON lines'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'sitecrawler {__version__}'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, {
            'seed_url': args.url,
            'workers': args.workers,
        })
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.logging.level = args.log_level
    setup_logging(
        {
            'level': config.logging.level,
            'format': config.logging.format,
            'file': config.logging.file,
        },
        enable_json=args.json_logs or config.logging.json
    )
    log_system_info()

    app = CrawlerApp(config)
    try:
        return asyncio.run(app.run())
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
