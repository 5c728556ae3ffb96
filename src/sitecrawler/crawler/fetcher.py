"""
Page fetching: the HTTP transport and the link fetchers built on top of it.
"""

import asyncio
import codecs
import aiohttp
import logging
import threading
import time
from typing import Dict, Iterable, List, Optional, Protocol, Set
from urllib.parse import SplitResult, urlsplit
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from .parser import apply_base_url, find_base_url, find_links


# Pages larger than this are parsed in a worker thread
PARSE_IN_THREAD_CHARS = 256 * 1024


class FetchError(Exception):
    """Raised when a page cannot be retrieved."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class LinkFetcher(Protocol):
    """Anything that can list the new outbound links of a page."""

    async def fetch_links(self, url: str) -> List[SplitResult]:
        ...


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None


class HTTPTransport:
    """
    Issues GET requests on a shared aiohttp session.

    Transport failures are reported in FetchResult.error; status codes are
    passed through untouched.
    """

    TEXT_TYPES = (
        'text/html',
        'text/plain',
        'text/xml',
        'application/xml',
        'application/xhtml+xml',
    )

    def __init__(self, user_agent: str, request_timeout: float = 30,
                 max_content_bytes: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_content_bytes = max_content_bytes

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Open the client session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent}
            )
            self.logger.debug("HTTP transport session started")

    async def close(self):
        """Close the client session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("HTTP transport session closed")

    async def get(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the body, or with error set on transport failure
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                content_type = response.headers.get('content-type', '').lower()

                # Only text bodies can carry links
                if content_type and not any(t in content_type for t in self.TEXT_TYPES):
                    self.logger.debug(f"Skipping body of non-text content: {url} ({content_type})")
                    content = ''
                else:
                    content = await self._read_content(response)

                self.stats['successful_requests'] += 1
                self.stats['total_bytes_downloaded'] += len(content)

                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    content_type=content_type,
                    encoding=response.charset,
                    fetch_time=time.time() - start_time
                )

        except asyncio.TimeoutError:
            error_msg = "Request timeout"
        except ClientError as e:
            error_msg = f"Client error: {e}"
        except ValueError as e:
            # aiohttp rejects malformed URLs with ValueError subclasses
            error_msg = f"Invalid URL: {e}"

        self.stats['failed_requests'] += 1
        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            fetch_time=time.time() - start_time
        )

    async def _read_content(self, response) -> str:
        """Read the body up to max_content_bytes and decode it."""
        content = bytearray()
        truncated = False
        async for chunk in response.content.iter_chunked(8192):
            content.extend(chunk)
            if len(content) > self.max_content_bytes:
                del content[self.max_content_bytes:]
                truncated = True
                break

        if truncated:
            self.logger.warning(f"Body truncated at {self.max_content_bytes} bytes: {response.url}")

        # Other encodings are only tried when the declared one is unknown or wrong
        for encoding in (response.charset, 'utf-8', 'cp1252'):
            if not encoding:
                continue
            try:
                # A truncated body may end inside a multibyte character;
                # a non-final incremental decode leaves that tail out
                decoder = codecs.getincrementaldecoder(encoding)()
                return decoder.decode(bytes(content), final=not truncated)
            except (UnicodeDecodeError, LookupError):
                continue
        return content.decode('latin-1')

    def get_stats(self) -> Dict[str, int]:
        """Get transport statistics."""
        return self.stats.copy()


class VisitedSet:
    """Thread-safe record of URLs already handed out for crawling."""

    def __init__(self, urls: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._visited: Set[str] = set(urls)

    def claim(self, links: Iterable[SplitResult]) -> List[SplitResult]:
        """
        Mark links visited and return the ones that were not visited before.

        The membership check and the mark happen under one lock, so two
        callers can never both claim the same URL. Duplicates within links
        are returned once.
        """
        claimed = []
        with self._lock:
            for link in links:
                key = link.geturl()
                if key in self._visited:
                    continue
                self._visited.add(key)
                claimed.append(link)
        return claimed

    def __len__(self) -> int:
        with self._lock:
            return len(self._visited)


class HTTPLinkFetcher:
    """
    Finds new same-host links on web pages.

    One instance is shared by all crawl workers; its visited set ensures each
    URL is returned at most once over the lifetime of the instance.
    """

    def __init__(self, start_url: str, transport: HTTPTransport):
        self.start_url = urlsplit(start_url)
        self.transport = transport
        self.logger = logging.getLogger(__name__)

        # The start page is crawled as the seed, never as a discovery
        self.visited = VisitedSet([self.start_url.geturl()])

    async def fetch_links(self, url: str) -> List[SplitResult]:
        """
        Fetch a page and return its unvisited same-host links.

        Raises:
            FetchError: The page could not be retrieved
        """
        result = await self.transport.get(url)
        if result.error:
            raise FetchError(url, result.error)

        content = result.content or ''
        if len(content) > PARSE_IN_THREAD_CHARS:
            # Keep the event loop responsive while scanning large pages
            links = await asyncio.to_thread(self._extract_links, url, content)
        else:
            links = self._extract_links(url, content)

        return self.visited.claim(self._filter_externals(links))

    def _extract_links(self, url: str, content: str) -> List[SplitResult]:
        base_url = find_base_url(url, content)
        return apply_base_url(base_url, find_links(content))

    def _filter_externals(self, links: List[SplitResult]) -> List[SplitResult]:
        host = _host_key(self.start_url)
        return [link for link in links if _host_key(link) == host]


def _host_key(url: SplitResult) -> str:
    """Host and port of a URL, without any user info."""
    return url.netloc.rpartition('@')[2]
