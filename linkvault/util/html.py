from bs4 import BeautifulSoup, Tag
import json
import logging
from playwright.sync_api import Browser, BrowserType, Page as PlayPage
from playwright_stealth import Stealth
from typing import Any, Iterable
from urllib.parse import urlparse

from linkvault.ai.types import LinkMetadata

logger = logging.getLogger(__name__)

# Some sites only put their tags on the page once their client-side code has
# run, in markup that no standard meta tag describes. Keyed by a hostname
# suffix; the values are CSS selectors whose text content is a tag.
SITE_TAG_SELECTORS: dict[str, list[str]] = {
    "behance.net": [".ProjectTags-link"],
}

BREADCRUMB_SELECTORS = (".Breadcrumbs-listItem span", "nav[aria-label=breadcrumb] li")


class BrowserCtx:
    """
    Context manager for a Playwright browser instance; cleans up after itself.
    Each extraction gets its own browser, so nothing leaks between requests.
    """

    def __init__(self, browser_type: BrowserType) -> None:
        self._browser = browser_type.launch(headless=True)

    def __enter__(self) -> Browser:
        return self._browser

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self._browser.close()


class PageCtx:
    """
    Context manager for a Playwright page instance; cleans up after itself.
    The page waits for the network to go quiet and then sits for a moment
    longer, since plenty of sites fill in their meta tags from a deferred
    script after the last request has finished.
    """

    def __init__(
        self,
        browser: Browser,
        url: str,
        *,
        user_agent: str,
        timeout_ms: int,
        settle_ms: int,
    ) -> None:
        self._page = browser.new_page(user_agent=user_agent)
        try:
            Stealth().apply_stealth_sync(self._page)
            self._page.set_default_timeout(timeout_ms)
            self._page.goto(url, timeout=timeout_ms, wait_until="networkidle")
            if settle_ms:
                self._page.wait_for_timeout(settle_ms)
        except Exception:
            # __exit__ never runs if we fail here, so close the page ourselves
            self._page.close()
            raise

    def __enter__(self) -> PlayPage:
        return self._page

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self._page.close()


def merge_unique(existing: Iterable[str], new: Iterable[str]) -> list[str]:
    """
    Order-preserving set union. Blank entries are dropped, and comparison is
    case-sensitive ("AI" and "ai" are both kept).
    """
    merged: list[str] = []
    seen: set[str] = set()
    for item in [*existing, *new]:
        item = item.strip()
        if item and item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


def split_keywords(value: str) -> list[str]:
    return [kw.strip() for kw in value.split(",") if kw.strip()]


def _meta(soup: BeautifulSoup, **attrs: str) -> str:
    tag = soup.find("meta", attrs=attrs)
    if not isinstance(tag, Tag):
        return ""
    content = tag.get("content")
    if not isinstance(content, str):
        return ""
    return content.strip()


def extract_title(soup: BeautifulSoup) -> str:
    """
    The social-preview title wins over <title>, because sites tend to stuff
    the latter with their own name and a tagline.
    """
    title = _meta(soup, property="og:title")
    if title:
        return title
    if soup.title is not None:
        return soup.title.get_text(strip=True)
    return ""


def title_from_html(html: str) -> str:
    return extract_title(BeautifulSoup(html, "html.parser"))


def _ld_values(value: Any) -> list[str]:
    """
    JSON-LD is loose about shapes: "keywords" can be a comma-separated string
    or a list, "about" can be a string, an entity with a name, or a list of
    either.
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        name = value.get("name")
        return [name] if isinstance(name, str) else []
    if isinstance(value, list):
        values: list[str] = []
        for item in value:
            values.extend(_ld_values(item))
        return values
    return []


def tags_from_json_ld(data: Any) -> list[str]:
    """
    Recursively pulls tags out of a parsed structured-data block. Blocks can be
    a single object, a list of objects, or an object with an @graph of them.
    """
    tags: list[str] = []
    if isinstance(data, list):
        for item in data:
            tags = merge_unique(tags, tags_from_json_ld(item))
        return tags
    if not isinstance(data, dict):
        return tags

    keywords = data.get("keywords")
    if isinstance(keywords, str):
        tags = merge_unique(tags, split_keywords(keywords))
    elif keywords is not None:
        tags = merge_unique(tags, _ld_values(keywords))

    about = data.get("about")
    if about is not None:
        tags = merge_unique(tags, _ld_values(about))

    graph = data.get("@graph")
    if isinstance(graph, list):
        tags = merge_unique(tags, tags_from_json_ld(graph))

    return tags


def extract_json_ld_tags(soup: BeautifulSoup) -> list[str]:
    tags: list[str] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        assert isinstance(script, Tag)
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            # One broken block shouldn't cost us the rest of the page
            logger.warning("Skipping malformed JSON-LD block: %s", e)
            continue
        tags = merge_unique(tags, tags_from_json_ld(data))
    return tags


def extract_categories(soup: BeautifulSoup) -> list[str]:
    """
    Best-effort only. The real categories come from the AI later; this just
    catches pages that are kind enough to declare a section.
    """
    section = _meta(soup, property="article:section")
    if section:
        return [section]
    for selector in BREADCRUMB_SELECTORS:
        crumb = soup.select_one(selector)
        if crumb is not None:
            text = crumb.get_text(strip=True)
            if text:
                return [text]
    return []


def extract_metadata(url: str, content: str) -> LinkMetadata:
    """
    Applies the extraction rules to a page's HTML, whether it came straight off
    the wire or out of a rendered browser page.
    """
    soup = BeautifulSoup(content, "html.parser")

    description = _meta(soup, name="description") or _meta(
        soup, property="og:description"
    )

    tags = extract_json_ld_tags(soup)
    meta_keywords = _meta(soup, name="keywords")
    if meta_keywords:
        tags = merge_unique(tags, split_keywords(meta_keywords))

    return LinkMetadata(
        url=url,
        title=extract_title(soup),
        description=description,
        image_url=_meta(soup, property="og:image"),
        tags=tags,
        categories=extract_categories(soup),
    )


def host_matches(url: str, domain: str) -> bool:
    """True if the URL is on `domain` or one of its subdomains."""
    host = urlparse(url).hostname or ""
    return host == domain or host.endswith("." + domain)


def site_tag_selectors(url: str) -> list[str]:
    selectors: list[str] = []
    for suffix, site_selectors in SITE_TAG_SELECTORS.items():
        if host_matches(url, suffix):
            selectors.extend(site_selectors)
    return selectors


def extract_site_tags(page: PlayPage, url: str) -> list[str]:
    """
    Reads tag chips out of the live page for sites we know about. Done against
    the page rather than the HTML snapshot since these are often shadow-DOM or
    lazily inserted nodes.
    """
    tags: list[str] = []
    for selector in site_tag_selectors(url):
        tags = merge_unique(tags, page.locator(selector).all_inner_texts())
    return tags
