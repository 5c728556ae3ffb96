"""
Link extraction and resolution for fetched HTML pages.

Anchors and base tags are located with a tolerant textual scan rather than a
full HTML parser, so broken markup still yields whatever links it contains.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import SplitResult, urlsplit, urlunsplit


logger = logging.getLogger(__name__)

ANCHOR_PATTERN = re.compile(r'<[aA][^>]*>')
BASE_PATTERN = re.compile(r'<[bB][aA][sS][eE][^>]*>')
HREF_PATTERN = re.compile(r'''(?i:href)\s*=\s*(?:'([^']+)'|"([^"]+)")''')


def _href_value(tag: str) -> Optional[str]:
    """Return the quoted href value of a tag, if it has one."""
    match = HREF_PATTERN.search(tag)
    if not match:
        return None
    return match.group(1) or match.group(2)


def find_links(content: str) -> List[SplitResult]:
    """
    Extract every anchor href from raw markup.

    Hrefs that cannot be parsed as URLs are logged and skipped.

    Args:
        content: Raw page markup

    Returns:
        Parsed (not yet resolved) links in document order
    """
    links = []

    for anchor in ANCHOR_PATTERN.findall(content):
        href = _href_value(anchor)
        if href is None:
            continue

        try:
            parsed = urlsplit(href)
            # Port validation is lazy in urllib, force it here
            parsed.port
        except ValueError as e:
            logger.warning(f"Error while parsing '{href}': {e}")
            continue

        links.append(parsed)

    return links


def strip_file_from_url(url: str) -> str:
    """
    Reduce a URL to its directory form.

    The final path segment is dropped along with any query and fragment,
    so relative links always resolve against a directory. URLs that fail to
    parse are returned unchanged.
    """
    try:
        parsed = urlsplit(url)
    except ValueError:
        return url

    directory = parsed.path.rpartition('/')[0] + '/'
    return urlunsplit((parsed.scheme, parsed.netloc, directory, '', ''))


def find_base_url(current_url: str, content: str) -> str:
    """Determine the directory-form base URL for a page.

    The href of the last <base> tag wins; without one the page's own URL is
    used.
    """
    base_url = current_url

    base_tags = BASE_PATTERN.findall(content)
    if base_tags:
        href = _href_value(base_tags[-1])
        if href is not None:
            base_url = href

    return strip_file_from_url(base_url)


def apply_base_url(base_url: str, links: List[SplitResult]) -> List[SplitResult]:
    """
    Resolve links against a directory-form base URL.

    Links with a host are kept unchanged. Host-less links with a path take
    the base's scheme and host; their path is kept when it starts with '/'
    and appended to the base path otherwise. Links without host and path
    (bare fragments or queries) and opaque links such as mailto: are dropped.

    Args:
        base_url: Base URL as returned by find_base_url
        links: Links as returned by find_links

    Returns:
        Resolved links, or an empty list when the base URL is unparsable
    """
    try:
        base = urlsplit(base_url)
    except ValueError as e:
        logger.warning(f"Can't parse base URL '{base_url}': {e}")
        return []

    resolved = []
    for link in links:
        if link.netloc:
            resolved.append(link)
            continue

        if not link.path or link.scheme:
            continue

        path = link.path
        if not path.startswith('/'):
            path = base.path + path

        resolved.append(link._replace(scheme=base.scheme, netloc=base.netloc, path=path))

    return resolved
