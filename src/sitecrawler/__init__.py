"""
Site Crawler

Crawls every page of one host reachable from a seed URL with a pool of
concurrent workers.
"""

__version__ = "1.0.0"
__description__ = "A concurrent same-host web crawler"
