# civic_search/services/ranking.py
import logging
import re
from typing import Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from civic_search.models.internal import SearchResultItem, SourceType

logger = logging.getLogger(__name__)

TRACKING_PARAMS = {
    "fbclid", "gclid", "dclid", "msclkid", "yclid", "igshid",
    "mc_cid", "mc_eid", "_ga", "ref", "ref_src",
}

_TITLE_NOISE = re.compile(r"[^\w\s]", re.UNICODE)


def normalize_url(url: str) -> str:
    """Lowercased scheme/host/path without trailing slash, fragment or tracking parameters"""
    parts = urlsplit(url.strip())
    path = parts.path.lower().rstrip("/")
    query = sorted(
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith("utm_") and key.lower() not in TRACKING_PARAMS
    )
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, urlencode(query), ""))


def title_key(title: str) -> str:
    return " ".join(_TITLE_NOISE.sub(" ", title.lower()).split())


def dedup_key(item: SearchResultItem) -> str:
    if item.url:
        return "url:" + normalize_url(item.url)
    return "title:" + title_key(item.title)


class ResultRanker:
    """Merge per-source results into one deduplicated, deterministically ordered list"""

    def __init__(self, priorities: Optional[Dict[SourceType, int]] = None):
        self.priorities = priorities or {}

    def merge(self, results_by_source: Mapping[SourceType, List[SearchResultItem]]) -> List[SearchResultItem]:
        """Deduplicate and order results; mapping order is the discovery order"""
        survivors: Dict[str, SearchResultItem] = {}
        contributors: Dict[str, List[str]] = {}
        first_seen: Dict[str, int] = {}

        position = 0
        for items in results_by_source.values():
            for item in items:
                key = dedup_key(item)
                if key not in survivors:
                    survivors[key] = item
                    contributors[key] = []
                    first_seen[key] = position
                elif item.relevance > survivors[key].relevance:
                    survivors[key] = item

                source = item.source_type.value
                if source not in contributors[key]:
                    contributors[key].append(source)
                position += 1

        merged = []
        for key, item in survivors.items():
            item = item.model_copy(deep=True)
            item.metadata["contributing_sources"] = contributors[key]
            merged.append((key, item))

        # Python's sort is stable; discovery order is the final tie-break
        merged.sort(key=lambda entry: (
            -entry[1].relevance,
            self.priorities.get(entry[1].source_type, float("inf")),
            first_seen[entry[0]],
        ))

        duplicates = position - len(merged)
        if duplicates:
            logger.debug(f"Removed {duplicates} duplicate results")

        return [item for _, item in merged]
