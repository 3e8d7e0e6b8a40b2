from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import json
import logging
from typing import Any
from urllib.parse import ParseResult, parse_qsl, urlencode, urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)

# Click and share trackers seen on video, blog and course platforms.
TRACKING_PARAMS = frozenset({"ref", "ref_src", "fbclid", "gclid", "mc_cid", "mc_eid", "si"})
TRACKING_PREFIXES = ("utm_",)
WEB_SCHEMES = frozenset({"http", "https"})
DEFAULT_PORTS = {"http": 80, "https": 443}
IGNORED_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "#")


@dataclass(frozen=True, slots=True)
class URLNormalizationOverride:
    """Extra per-domain rules layered over the default normalization."""

    strip_query_params: frozenset[str] = field(default_factory=frozenset)
    strip_query_prefixes: frozenset[str] = field(default_factory=frozenset)
    strip_www: bool = False
    force_https: bool = False

    def strips(self, lowered_key: str) -> bool:
        if lowered_key in self.strip_query_params:
            return True
        return any(lowered_key.startswith(prefix) for prefix in self.strip_query_prefixes)


def canonical_hash(normalized_url: str) -> str:
    return hashlib.sha256(normalized_url.encode("utf-8")).hexdigest()


def parse_normalization_overrides(raw: str | None) -> dict[str, URLNormalizationOverride]:
    """Parse ``{"domain": {rules}}`` JSON; malformed input yields no overrides."""
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("url normalization overrides ignored reason=invalid_json")
        return {}
    if not isinstance(decoded, dict):
        logger.warning("url normalization overrides ignored reason=not_an_object")
        return {}

    overrides: dict[str, URLNormalizationOverride] = {}
    for raw_domain, rules in decoded.items():
        domain = raw_domain.strip().lower().lstrip(".") if isinstance(raw_domain, str) else ""
        if not domain or not isinstance(rules, dict):
            continue
        overrides[domain] = URLNormalizationOverride(
            strip_query_params=_lowered_set(rules.get("strip_query_params")),
            strip_query_prefixes=_lowered_set(rules.get("strip_query_prefixes")),
            strip_www=bool(rules.get("strip_www", False)),
            force_https=bool(rules.get("force_https", False)),
        )
    return overrides


def normalize_url(raw_url: str, *, overrides: dict[str, URLNormalizationOverride] | None = None) -> str:
    """Identity key for a curated resource.

    Lowercases scheme and host, drops default ports, fragments, tracking
    parameters and a trailing path slash, and sorts the remaining query.
    """
    parsed = urlparse(raw_url.strip())
    scheme = parsed.scheme.lower()
    host = parsed.hostname or ""
    port = _explicit_port(parsed, scheme)

    override = _match_override(host, overrides or {})
    if override is not None:
        if override.strip_www and host.startswith("www."):
            host = host.removeprefix("www.")
        if override.force_https and scheme == "http":
            scheme = "https"

    netloc = _build_netloc(parsed.netloc.rpartition("@")[0], host, port)
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((scheme, netloc, path, "", _normalize_query(parsed.query, override), ""))


def resolve_url(base_url: str, href: str | None) -> str | None:
    """Resolve ``href`` against ``base_url``; only absolute http(s) results are returned."""
    candidate = (href or "").strip()
    if not candidate or candidate.startswith(IGNORED_HREF_PREFIXES):
        return None
    if candidate.startswith("//"):
        candidate = f"{urlparse(base_url).scheme or 'https'}:{candidate}"
    resolved = urljoin(base_url, candidate)
    return resolved if is_web_url(resolved) else None


def is_web_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme.lower() in WEB_SCHEMES and bool(parsed.hostname)


def host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower().removeprefix("www.")


def _normalize_query(query: str, override: URLNormalizationOverride | None) -> str:
    kept = []
    for key, value in parse_qsl(query, keep_blank_values=True):
        lowered = key.lower()
        if lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PREFIXES):
            continue
        if override is not None and override.strips(lowered):
            continue
        kept.append((key, value))
    kept.sort(key=lambda pair: pair[0])
    return urlencode(kept, doseq=True)


def _explicit_port(parsed: ParseResult, scheme: str) -> str:
    try:
        port = parsed.port
    except ValueError:
        # Out-of-range or non-numeric ports are kept verbatim.
        return parsed.netloc.rpartition("@")[2].rpartition("]")[2].partition(":")[2]
    if port is None or DEFAULT_PORTS.get(scheme) == port:
        return ""
    return str(port)


def _build_netloc(userinfo: str, host: str, port: str) -> str:
    rendered = f"[{host}]" if ":" in host else host
    if port:
        rendered = f"{rendered}:{port}"
    return f"{userinfo}@{rendered}" if userinfo else rendered


def _lowered_set(value: Any) -> frozenset[str]:
    if not isinstance(value, list):
        return frozenset()
    return frozenset(item.strip().lower() for item in value if isinstance(item, str) and item.strip())


def _match_override(host: str, overrides: dict[str, URLNormalizationOverride]) -> URLNormalizationOverride | None:
    # Most specific suffix wins: "cdn.distill.pub" before "distill.pub".
    labels = host.split(".") if host else []
    for index in range(len(labels)):
        override = overrides.get(".".join(labels[index:]))
        if override is not None:
            return override
    return None
