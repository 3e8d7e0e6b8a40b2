"""Map raw source payloads onto canonical candidate signals.

Scrape payloads are parsed with BeautifulSoup using the descriptor's CSS
selectors; API payloads are walked with dotted paths. Both produce
``CandidateSignals``: identity fields plus the raw indicator counts the scorer
turns into sub-scores.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import re
from typing import Any
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from curator.core.urls import host_of, resolve_url
from curator.schemas.resources import ResourceType
from curator.services.sources import ApiSource, ReputationTier, ScrapeSource

_TEMPLATE_FIELD = re.compile(r"\{([A-Za-z0-9_.]+)\}")
_WHITESPACE = re.compile(r"\s+")
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %Y",
    "%b %Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%a, %d %b %Y %H:%M:%S %Z",
)

VIDEO_HOSTS = ("youtube.com", "youtu.be", "vimeo.com")
COURSE_HOSTS = ("coursera.org", "udemy.com", "edx.org", "khanacademy.org", "ocw.mit.edu")
INTERACTIVE_MARKERS = ("github.io", "playground", "visualizer", "interactive", "demo", "exercise", "practice")


class NormalizationError(Exception):
    """Raised when a payload does not have the shape its descriptor promises."""


@dataclass(slots=True)
class CandidateSignals:
    url: str
    title: str
    source_name: str
    resource_type: ResourceType
    reputation_tier: ReputationTier
    description: str = ""
    image_url: str | None = None
    author: str | None = None
    publish_date: datetime | None = None
    visual_indicators: int = 0
    authority_indicators: int = 0
    interactivity_indicators: int = 0


@dataclass(slots=True)
class NormalizationResult:
    candidates: list[CandidateSignals] = field(default_factory=list)
    raw_count: int = 0


def normalize_payload(source: ScrapeSource | ApiSource, payload: Any) -> NormalizationResult:
    override = SOURCE_OVERRIDES.get(source.name)
    if override is not None:
        return override(source, payload)
    if isinstance(source, ScrapeSource):
        return normalize_scrape_payload(source, payload)
    return normalize_api_payload(source, payload)


def normalize_scrape_payload(source: ScrapeSource, html: Any) -> NormalizationResult:
    if not isinstance(html, str):
        raise NormalizationError(f"expected HTML text from {source.name}")
    soup = BeautifulSoup(html, "html.parser")
    items = soup.select(source.result_selector)
    result = NormalizationResult(raw_count=len(items))

    for item in items:
        if len(result.candidates) >= source.max_results:
            break
        title = _element_text(item.select_one(source.title_selector))
        url = resolve_url(source.base_url, _link_href(item, source.link_selector))
        if not title or not url:
            continue

        image_url = _image_src(item, source.image_selector, source.base_url)
        visual = sum(1 for selector in source.visual_selectors if item.select_one(selector) is not None)
        if image_url:
            visual += 1
        result.candidates.append(
            CandidateSignals(
                url=url,
                title=title,
                source_name=source.name,
                resource_type=infer_resource_type(url, source.resource_type),
                reputation_tier=source.reputation_tier,
                description=_selected_text(item, source.description_selector) or "",
                image_url=image_url,
                author=_selected_text(item, source.author_selector),
                publish_date=parse_publish_date(_selected_date(item, source.date_selector)),
                visual_indicators=visual,
                authority_indicators=sum(
                    1 for selector in source.authority_selectors if item.select_one(selector) is not None
                ),
                interactivity_indicators=sum(
                    1 for selector in source.interactivity_selectors if item.select_one(selector) is not None
                ),
            )
        )
    return result


def normalize_api_payload(
    source: ApiSource,
    payload: Any,
    *,
    clean_text: Callable[[str | None], str | None] | None = None,
) -> NormalizationResult:
    items = get_path(payload, source.items_path)
    if not isinstance(items, list):
        raise NormalizationError(f"{source.name} payload has no list at {source.items_path!r}")
    clean = clean_text or _as_text
    result = NormalizationResult(raw_count=len(items))

    for item in items:
        if len(result.candidates) >= source.max_results:
            break
        if not isinstance(item, dict):
            continue
        title = clean(_as_text(get_path(item, source.title_path)))
        if source.url_template:
            raw_url = render_url_template(source.url_template, item)
        else:
            raw_url = _as_text(get_path(item, source.url_path)) if source.url_path else None
        url = resolve_url(source.base_url, raw_url)
        if not title or not url:
            continue

        image_url = resolve_url(source.base_url, _path_text(item, source.image_path))
        result.candidates.append(
            CandidateSignals(
                url=url,
                title=title,
                source_name=source.name,
                resource_type=infer_resource_type(url, source.resource_type),
                reputation_tier=source.reputation_tier,
                description=clean(_path_text(item, source.description_path)) or "",
                image_url=image_url,
                author=_path_text(item, source.author_path),
                publish_date=parse_publish_date(_path_text(item, source.date_path)),
                visual_indicators=1 if image_url else 0,
            )
        )
    return result


def _normalize_wikipedia(source: ScrapeSource | ApiSource, payload: Any) -> NormalizationResult:
    # Search snippets carry <span class="searchmatch"> markup; article URLs are built from titles.
    if not isinstance(source, ApiSource):
        raise NormalizationError("Wikipedia override expects an API source")
    wiki_source = source.model_copy(update={"url_template": None, "url_path": "_article_url"})
    items = get_path(payload, source.items_path)
    if isinstance(items, list):
        base = source.base_url.rstrip("/")
        items = [
            {**item, "_article_url": f"{base}/wiki/{quote(item['title'].replace(' ', '_'), safe='()_,')}"}
            if isinstance(item, dict) and isinstance(item.get("title"), str)
            else item
            for item in items
        ]
        payload = _set_items(source.items_path, items)
    return normalize_api_payload(wiki_source, payload, clean_text=strip_markup)


SOURCE_OVERRIDES: dict[str, Callable[[ScrapeSource | ApiSource, Any], NormalizationResult]] = {
    "Wikipedia": _normalize_wikipedia,
}


def infer_resource_type(url: str, declared: ResourceType | None = None) -> ResourceType:
    if declared is not None:
        return declared
    lowered = url.lower()
    host = host_of(url)
    if _host_matches(host, VIDEO_HOSTS) or "/video" in lowered:
        return "video"
    if _host_matches(host, COURSE_HOSTS) or "/course" in lowered:
        return "course"
    if any(marker in lowered for marker in INTERACTIVE_MARKERS):
        return "interactive"
    if host == "books.google.com" or "/book" in lowered:
        return "book"
    return "article"


def parse_publish_date(value: Any) -> datetime | None:
    """Parse ISO 8601 and common English date strings; anything else is unknown."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = _WHITESPACE.sub(" ", value).strip()
        if not raw:
            return None
        parsed = _parse_date_text(raw)
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def get_path(data: Any, path: str | None) -> Any:
    if not path:
        return None
    current = data
    for segment in path.split("."):
        if isinstance(current, dict):
            current = current.get(segment)
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def render_url_template(template: str, item: dict[str, Any]) -> str | None:
    missing = False

    def replace(match: re.Match[str]) -> str:
        nonlocal missing
        value = get_path(item, match.group(1))
        if value is None or isinstance(value, (dict, list)) or str(value).strip() == "":
            missing = True
            return ""
        return quote(str(value).strip(), safe="")

    rendered = _TEMPLATE_FIELD.sub(replace, template)
    return None if missing else rendered


def strip_markup(value: str | None) -> str | None:
    if value is None:
        return None
    text = BeautifulSoup(value, "html.parser").get_text(" ")
    return _as_text(_WHITESPACE.sub(" ", text))


def _parse_date_text(raw: str) -> datetime | None:
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    return None


def _host_matches(host: str, domains: tuple[str, ...]) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def _set_items(items_path: str, items: list[Any]) -> dict[str, Any]:
    payload: Any = items
    for segment in reversed(items_path.split(".")):
        payload = {segment: payload}
    return payload


def _element_text(element: Tag | None) -> str | None:
    if element is None:
        return None
    return _as_text(_WHITESPACE.sub(" ", element.get_text(" ")))


def _selected_text(item: Tag, selector: str | None) -> str | None:
    if not selector:
        return None
    return _element_text(item.select_one(selector))


def _selected_date(item: Tag, selector: str | None) -> str | None:
    if not selector:
        return None
    element = item.select_one(selector)
    if element is None:
        return None
    machine_value = element.get("datetime") or element.get("content")
    if isinstance(machine_value, str) and machine_value.strip():
        return machine_value
    return _element_text(element)


def _link_href(item: Tag, selector: str) -> str | None:
    link = item.select_one(selector)
    if link is None and item.name == "a":
        link = item
    if link is None:
        return None
    href = link.get("href")
    return href if isinstance(href, str) else None


def _image_src(item: Tag, selector: str | None, base_url: str) -> str | None:
    if not selector:
        return None
    element = item.select_one(selector)
    if element is None:
        return None
    if element.name != "img":
        nested = element.find("img")
        if isinstance(nested, Tag):
            element = nested
    for attribute in ("src", "data-src", "content"):
        value = element.get(attribute)
        if isinstance(value, str) and value.strip():
            return resolve_url(base_url, value)
    return None


def _path_text(item: dict[str, Any], path: str | None) -> str | None:
    return _as_text(get_path(item, path)) if path else None


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None
