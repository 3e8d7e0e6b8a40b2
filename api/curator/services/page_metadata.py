from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from bs4 import BeautifulSoup
import httpx

from curator.core.config import Settings
from curator.core.urls import is_web_url, resolve_url
from curator.schemas.resources import DiscoveredResource
from curator.services.normalizer import CandidateSignals, infer_resource_type, parse_publish_date
from curator.services.scoring import score_candidate

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Resource"
ANALYZED_SOURCE_NAME = "Submitted URL"


class PageAnalysisError(Exception):
    """Raised when the page cannot be fetched or is not HTML."""


@dataclass(slots=True)
class PageMetadata:
    title: str | None = None
    description: str | None = None
    image: str | None = None
    video: str | None = None
    author: str | None = None
    published: str | None = None
    site_name: str | None = None


def extract_page_metadata(html: str) -> PageMetadata:
    soup = BeautifulSoup(html, "html.parser")
    properties: dict[str, str] = {}
    for element in soup.select('meta[property^="og:"], meta[property^="article:"]'):
        key = element.get("property")
        content = element.get("content")
        if isinstance(key, str) and isinstance(content, str) and content.strip():
            properties.setdefault(key.strip().lower(), content.strip())

    title = properties.get("og:title")
    if not title and soup.title is not None:
        title = soup.title.get_text(strip=True) or None
    description = properties.get("og:description") or _meta_name(soup, "description")
    return PageMetadata(
        title=title,
        description=description,
        image=properties.get("og:image"),
        video=properties.get("og:video") or properties.get("og:video:url"),
        author=properties.get("article:author") or _meta_name(soup, "author"),
        published=properties.get("article:published_time"),
        site_name=properties.get("og:site_name"),
    )


async def analyze_page(
    url: str,
    *,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    now: datetime | None = None,
) -> DiscoveredResource:
    """Score a single page from its OpenGraph metadata."""
    if not is_web_url(url):
        raise ValueError("url must be an absolute http(s) URL")

    if client is not None:
        html = await _fetch_html(client, url, settings)
    else:
        async with httpx.AsyncClient(timeout=settings.analyze_timeout_seconds) as temp_client:
            html = await _fetch_html(temp_client, url, settings)

    metadata = extract_page_metadata(html)
    image_url = resolve_url(url, metadata.image)
    visual_indicators = (1 if image_url else 0) + (1 if metadata.video else 0)
    candidate = CandidateSignals(
        url=url,
        title=metadata.title or UNTITLED,
        source_name=metadata.site_name or ANALYZED_SOURCE_NAME,
        resource_type=infer_resource_type(url),
        reputation_tier="standard",
        description=metadata.description or "",
        image_url=image_url,
        author=metadata.author,
        publish_date=parse_publish_date(metadata.published),
        visual_indicators=visual_indicators,
    )
    return score_candidate(candidate, now=now or datetime.now(timezone.utc))


async def _fetch_html(client: httpx.AsyncClient, url: str, settings: Settings) -> str:
    try:
        response = await client.get(
            url,
            headers={"User-Agent": settings.discovery_user_agent},
            follow_redirects=True,
        )
    except httpx.HTTPError as exc:
        logger.warning("page analysis fetch failed url=%s error=%s", url, exc)
        raise PageAnalysisError(f"unable to fetch {url}") from exc

    if response.status_code >= 400:
        raise PageAnalysisError(f"unable to fetch {url}: HTTP {response.status_code}")
    content_type = response.headers.get("content-type", "")
    if content_type and "html" not in content_type.lower():
        raise PageAnalysisError(f"unsupported content type {content_type}")
    return response.text


def _meta_name(soup: BeautifulSoup, name: str) -> str | None:
    element = soup.find("meta", attrs={"name": name})
    if element is None:
        return None
    content = element.get("content")
    if isinstance(content, str) and content.strip():
        return content.strip()
    return None
