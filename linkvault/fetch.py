from enum import Enum
import logging
from playwright.sync_api import Error as PlaywrightError, sync_playwright
import re
import requests

from linkvault.ai.enrich import enrich
from linkvault.ai.types import LinkMetadata
from linkvault.config import Settings
from linkvault.util.containers import InFlightSet
from linkvault.util.download import download_html
from linkvault.util.html import (
    BrowserCtx,
    PageCtx,
    extract_metadata,
    extract_site_tags,
    host_matches,
    merge_unique,
    title_from_html,
)

logger = logging.getLogger(__name__)

# Sites known to build their pages client-side. A plain GET of these gets you
# a shell of a page (or a login wall) with none of the metadata we're after.
DYNAMIC_SITE_DOMAINS = (
    "behance.net",
    "pinterest.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "medium.com",
)

# Their page titles tend to name the site even when the URL doesn't (custom
# domains on Medium, shortened pin links and so on).
DYNAMIC_TITLE_PATTERN = re.compile(
    r"\b(behance|pinterest|instagram|twitter|medium)\b", re.IGNORECASE
)


class Strategy(str, Enum):
    LIGHTWEIGHT = "lightweight"
    RENDERED = "rendered"


class ExtractionError(Exception):
    """
    The page couldn't be fetched or rendered at all. The message carries the
    underlying cause, which is fine to log or show but isn't a stack trace.
    """

    def __init__(self, url: str, cause: Exception) -> None:
        super().__init__(f"Failed to extract metadata from {url}: {cause}")
        self.url = url
        self.cause = cause


def is_dynamic_site(url: str, title: str) -> bool:
    if DYNAMIC_TITLE_PATTERN.search(title):
        return True
    return any(host_matches(url, domain) for domain in DYNAMIC_SITE_DOMAINS)


def select_strategy(url: str, settings: Settings) -> Strategy:
    """
    Most pages put everything we need into their server-rendered HTML, so try
    a cheap GET first. Rendering in a browser is slow, so it's only used when
    the cheap path looks like it won't work: the GET failed outright, the page
    has no title, or it's a site we know renders client-side. This never
    raises; when in doubt, render.
    """
    try:
        html = download_html(url, settings.user_agent, settings.probe_timeout)
    except requests.RequestException as e:
        logger.info("Probe failed for %s, rendering instead: %s", url, e)
        return Strategy.RENDERED

    title = title_from_html(html)
    if not title or is_dynamic_site(url, title):
        logger.info("Detected JS-heavy site, rendering: %s", url)
        return Strategy.RENDERED
    return Strategy.LIGHTWEIGHT


def extract_static(url: str, settings: Settings) -> LinkMetadata:
    try:
        html = download_html(url, settings.user_agent, settings.fetch_timeout)
    except requests.RequestException as e:
        raise ExtractionError(url, e) from e
    return extract_metadata(url, html)


def extract_rendered(url: str, settings: Settings) -> LinkMetadata:
    """
    Renders the page in a headless browser and runs the same extraction rules
    over the result, plus any site-specific tag selectors. Both the page and
    the browser are closed whether or not this succeeds.
    """
    try:
        with sync_playwright() as p:
            with BrowserCtx(p.chromium) as browser:
                with PageCtx(
                    browser,
                    url,
                    user_agent=settings.user_agent,
                    timeout_ms=settings.render_timeout_ms,
                    settle_ms=settings.settle_ms,
                ) as ppage:
                    metadata = extract_metadata(url, ppage.content())
                    site_tags = extract_site_tags(ppage, url)
    except PlaywrightError as e:
        raise ExtractionError(url, e) from e

    if site_tags:
        metadata.tags = merge_unique(site_tags, metadata.tags)
    return metadata


def extract(url: str, settings: Settings, strategy: Strategy) -> LinkMetadata:
    if strategy == Strategy.LIGHTWEIGHT:
        return extract_static(url, settings)
    return extract_rendered(url, settings)


def fetch_metadata(
    url: str,
    settings: Settings,
    guard: InFlightSet[str],
    *,
    strategy: Strategy | None = None,
    enrich_result: bool = True,
) -> LinkMetadata:
    """
    The whole pipeline for one URL: pick a strategy, extract, then let the AI
    sort out tags and categories. Raises LinkInFlightError if the same URL is
    already being worked on, and ExtractionError if the page couldn't be
    fetched. Enrichment never fails the request.
    """
    with guard.hold(url):
        if strategy is None:
            strategy = select_strategy(url, settings)
        logger.info("Extracting %s with the %s strategy", url, strategy.value)

        metadata = extract(url, settings, strategy)
        if enrich_result:
            metadata = enrich(metadata, settings)
        return metadata
