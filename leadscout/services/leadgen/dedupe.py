"""Candidate identity normalization, noise filtering, and first-seen-wins dedup."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from urllib.parse import urlparse

from leadscout.models.lead import Candidate, SearchHit

logger = logging.getLogger(__name__)

# Job boards, social platforms, press-release wires, and aggregators.
EXCLUDED_DOMAINS: frozenset[str] = frozenset(
    {
        "linkedin.com",
        "indeed.com",
        "glassdoor.com",
        "ziprecruiter.com",
        "monster.com",
        "careerbuilder.com",
        "lever.co",
        "greenhouse.io",
        "workday.com",
        "myworkdayjobs.com",
        "wellfound.com",
        "news.ycombinator.com",
        "reddit.com",
        "twitter.com",
        "x.com",
        "youtube.com",
        "facebook.com",
        "instagram.com",
        "tiktok.com",
        "medium.com",
        "prnewswire.com",
        "businesswire.com",
        "globenewswire.com",
        "wikipedia.org",
        "crunchbase.com",
        "pitchbook.com",
        "g2.com",
        "capterra.com",
        "trustpilot.com",
    }
)
CAREERS_HOST_LABELS = frozenset({"careers", "jobs"})
CAREERS_PATH_MARKERS = ("/career", "/job", "/hiring")
GENERIC_TITLE_PATTERN = re.compile(r"\b(home|homepage|welcome)\b", flags=re.IGNORECASE)
TITLE_SEPARATORS = re.compile(r"\s*\|\s*|\s+[-–—:]\s+")
MAX_TITLE_NAME_LENGTH = 50


def normalize_domain(value: str) -> str:
    """Return the bare lowercase host for a URL or domain (no scheme, ``www.``, port, or path)."""
    raw = (value or "").strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = f"//{raw}"
    try:
        host = urlparse(raw).hostname or ""
    except ValueError:
        return ""
    host = host.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def is_excluded_domain(domain: str) -> bool:
    """True when the domain or any parent domain is on the exclusion list."""
    normalized = normalize_domain(domain)
    if not normalized:
        return True
    return any(normalized == excluded or normalized.endswith(f".{excluded}") for excluded in EXCLUDED_DOMAINS)


def looks_like_careers_page(url: str) -> bool:
    """Detect job listings by host label (``careers.acme.com``) or path (``/careers``)."""
    domain = normalize_domain(url)
    if domain.split(".", 1)[0] in CAREERS_HOST_LABELS:
        return True
    raw = url if "://" in url else f"//{url}"
    try:
        path = urlparse(raw).path.lower()
    except ValueError:
        return False
    return any(marker in path for marker in CAREERS_PATH_MARKERS)


def extract_company_name(domain: str, title: str | None) -> str:
    """Best-effort display name from a page title, falling back to the domain label."""
    cleaned_title = (title or "").strip()
    if cleaned_title and not GENERIC_TITLE_PATTERN.search(cleaned_title):
        name = TITLE_SEPARATORS.split(cleaned_title, maxsplit=1)[0].strip()
        if name and len(name) < MAX_TITLE_NAME_LENGTH:
            return name
    label = normalize_domain(domain).split(".", 1)[0]
    return label.title() if label else "Unknown"


def candidates_from_hits(hits: Iterable[SearchHit]) -> list[Candidate]:
    """Turn raw search hits into candidates, numbering them in discovery order."""
    candidates: list[Candidate] = []
    for hit in hits:
        domain = normalize_domain(hit.url)
        if not domain:
            logger.debug("leadgen.dedupe.unparseable_url", extra={"url": hit.url})
            continue
        candidates.append(
            Candidate(
                domain=domain,
                name=extract_company_name(domain, hit.title),
                source_url=hit.url,
                snippet=(hit.text or "").strip(),
                discovery_index=len(candidates),
                provider=hit.provider,
            )
        )
    return candidates


def dedupe_candidates(candidates: Sequence[Candidate]) -> list[Candidate]:
    """Drop excluded domains, careers pages, and repeat domains; first occurrence wins.

    The function is a fixed point: feeding its output back in returns the same list.
    """
    seen: set[str] = set()
    kept: list[Candidate] = []
    for candidate in candidates:
        domain = normalize_domain(candidate.domain)
        if domain in seen:
            continue
        if is_excluded_domain(domain):
            logger.debug("leadgen.dedupe.excluded_domain", extra={"domain": domain})
            continue
        if looks_like_careers_page(candidate.source_url):
            logger.debug("leadgen.dedupe.careers_page", extra={"url": candidate.source_url})
            continue
        seen.add(domain)
        kept.append(candidate)
    return kept
