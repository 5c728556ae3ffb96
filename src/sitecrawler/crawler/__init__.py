"""
Site crawler core components.
"""

from .engine import CrawlEngine, CrawlStats, PendingCounter, run_crawl
from .fetcher import FetchError, FetchResult, HTTPLinkFetcher, HTTPTransport, LinkFetcher, VisitedSet

__all__ = [
    'CrawlEngine', 'CrawlStats', 'PendingCounter', 'run_crawl',
    'FetchError', 'FetchResult', 'HTTPLinkFetcher', 'HTTPTransport',
    'LinkFetcher', 'VisitedSet'
]
