# civic_search/services/credibility.py
"""Credibility assessment for open-web results.

A result's credibility blends a static domain-trust table, an LLM estimate of
content quality and a freshness decay. Flags are assigned by rule and carry
categorical risk (satire, known disinformation) independently of the blend.
"""

import asyncio
import hashlib
import json
import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from civic_search.config.settings import settings
from civic_search.core.exceptions import CredibilityAssessmentException, LLMClientException
from civic_search.interfaces.llm_client import LLMClientInterface
from civic_search.models.internal import (
    CredibilityFlag,
    CredibilityScore,
    FlagSeverity,
    FlagType,
    SearchResultItem,
    as_utc,
    clamp_unit,
)
from civic_search.services.cache_service import CacheService
from civic_search.services.normalizer import to_unit_score

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5
UNDATED_FRESHNESS = 0.5

TRUSTED_DOMAINS: Dict[str, float] = {
    # Government (PL)
    "gov.pl": 0.95,
    "sejm.gov.pl": 0.95,
    "isap.sejm.gov.pl": 0.95,
    "stat.gov.pl": 0.95,
    "bdl.stat.gov.pl": 0.95,
    "bip.gov.pl": 0.90,
    "funduszeeuropejskie.gov.pl": 0.90,
    "geoportal.gov.pl": 0.90,
    "ms.gov.pl": 0.90,
    "mf.gov.pl": 0.90,
    # Local government bulletins (bip.<gmina>.pl)
    "bip.": 0.85,
    # EU
    "europa.eu": 0.90,
    "eur-lex.europa.eu": 0.95,
    # Press agencies
    "pap.pl": 0.85,
    "reuters.com": 0.85,
    "apnews.com": 0.85,
    # Established media
    "tvn24.pl": 0.75,
    "onet.pl": 0.70,
    "wp.pl": 0.70,
    "gazeta.pl": 0.70,
    "rp.pl": 0.75,
    "wyborcza.pl": 0.70,
    "polskieradio.pl": 0.75,
    "tvp.info": 0.70,
    # Academic
    ".edu.pl": 0.85,
    ".edu": 0.85,
    "wikipedia.org": 0.65,
    "scholar.google.com": 0.80,
    # Legal databases
    "sip.lex.pl": 0.85,
    "legalis.pl": 0.85,
}

UNTRUSTED_DOMAINS: List[str] = [
    "niepoprawni.pl",
    "wolnemedia.net",
]

SATIRE_DOMAINS: List[str] = [
    "aszdziennik.pl",
    "theonion.com",
    "babylonbee.com",
]

UNTRUSTED_TRUST = 0.15
SATIRE_TRUST = 0.1
GOVERNMENT_SUFFIX_TRUST = 0.85
EDUCATION_SUFFIX_TRUST = 0.80

# Blend weights; sum to 1
WEIGHTS = {
    "domain_trust": 0.35,
    "content_quality": 0.25,
    "factual_accuracy": 0.20,
    "freshness": 0.10,
    "neutrality": 0.10,
}

HIGH_BIAS = 0.7

# (penalty for high severity, penalty otherwise)
FLAG_PENALTIES: Dict[FlagType, Tuple[float, float]] = {
    FlagType.FAKE_NEWS: (0.40, 0.20),
    FlagType.MISLEADING: (0.30, 0.15),
    FlagType.SATIRE: (0.50, 0.50),
    FlagType.BIASED: (0.20, 0.10),
}

# Hard upper bounds on overall for categorical risks
FLAG_CEILINGS: Dict[FlagType, float] = {
    FlagType.SATIRE: 0.25,
}
HIGH_FAKE_NEWS_CEILING = 0.2

# Flag types the LLM may report; rule-based types stay rule-based
LLM_FLAG_TYPES = {
    FlagType.MISLEADING,
    FlagType.FAKE_NEWS,
    FlagType.BIASED,
    FlagType.OPINION,
    FlagType.UNVERIFIED,
}

CONTENT_QUALITY_PROMPT = """You are a fact-checking expert assessing the credibility of web content.
Rate the text below on:
1. quality (0-100): professional writing, cites sources, substantive
2. factual_accuracy (0-100): claims look true and verifiable
3. bias_level (0-100): 0 = neutral, 100 = highly biased

Consider emotional versus factual language, presence of sources and quotes,
consistency with well-known facts, and signs of propaganda or manipulation.
The text may be in Polish.

Respond ONLY with JSON:
{{"quality": <number>, "factual_accuracy": <number>, "bias_level": <number>,
 "flags": [{{"type": "misleading|fake_news|biased|opinion|unverified", "severity": "low|medium|high", "reason": "..."}}]}}

User query: "{query}"
Source domain: {domain}
Title: "{title}"
Content:
\"\"\"{content}\"\"\""""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_RELATIVE_DATE = re.compile(r"(\d+)\s+(minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE)
_DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%d.%m.%Y", "%Y-%m-%d", "%d %b %Y")
_RELATIVE_UNITS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


class ContentEstimate(BaseModel):
    """LLM content-quality estimate; missing fields stay None (treated as neutral)"""
    model_config = ConfigDict(populate_by_name=True)

    quality: Optional[float] = None
    factual_accuracy: Optional[float] = Field(default=None, alias="factualAccuracy")
    bias_level: Optional[float] = Field(default=None, alias="biasLevel")
    flags: List[CredibilityFlag] = Field(default_factory=list)


def _domain_matches(domain: str, pattern: str) -> bool:
    # "bip." is a host label prefix, ".edu" a suffix; plain domains match themselves and subdomains
    if pattern.endswith("."):
        return domain.startswith(pattern) or ("." + pattern) in domain
    if pattern.startswith("."):
        return domain.endswith(pattern)
    return domain == pattern or domain.endswith("." + pattern)


def _bare_domain(domain: str) -> str:
    domain = (domain or "").lower().strip().rstrip(".")
    return domain[4:] if domain.startswith("www.") else domain


def domain_trust(domain: str) -> float:
    """Trust value for a host name; 0.5 when the domain is unknown"""
    domain = _bare_domain(domain)
    if not domain:
        return NEUTRAL_SCORE

    if any(_domain_matches(domain, d) for d in SATIRE_DOMAINS):
        return SATIRE_TRUST
    if any(_domain_matches(domain, d) for d in UNTRUSTED_DOMAINS):
        return UNTRUSTED_TRUST

    if domain in TRUSTED_DOMAINS:
        return TRUSTED_DOMAINS[domain]

    # Most specific matching pattern wins
    matches = [pattern for pattern in TRUSTED_DOMAINS if _domain_matches(domain, pattern)]
    if matches:
        return TRUSTED_DOMAINS[max(matches, key=len)]

    if domain.endswith(".gov.pl") or domain.endswith(".gov"):
        return GOVERNMENT_SUFFIX_TRUST
    if domain.endswith(".edu.pl") or domain.endswith(".edu"):
        return EDUCATION_SUFFIX_TRUST

    return NEUTRAL_SCORE


def parse_publish_date(value, now: Optional[datetime] = None) -> Optional[datetime]:
    """Best-effort parse of the date formats search engines return"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)

    text = str(value).strip()
    if not text:
        return None

    try:
        return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    match = _RELATIVE_DATE.search(text)
    if match:
        now = now or datetime.now(timezone.utc)
        return now - int(match.group(1)) * _RELATIVE_UNITS[match.group(2).lower()]

    return None


class CredibilityAssessor:
    """Score open-web results for trustworthiness"""

    def __init__(
        self,
        llm_client: Optional[LLMClientInterface] = None,
        horizon_days: Optional[int] = None,
        freshness_floor: Optional[float] = None,
        min_reliable: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        cache: Optional[CacheService] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.llm_client = llm_client
        self.horizon_days = horizon_days or settings.FRESHNESS_HORIZON_DAYS
        self.freshness_floor = settings.FRESHNESS_FLOOR if freshness_floor is None else freshness_floor
        self.min_reliable = settings.CREDIBILITY_MIN_RELIABLE if min_reliable is None else min_reliable
        self.cache = cache or CacheService(ttl=settings.CACHE_TTL_CREDIBILITY, namespace="credibility")
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.CREDIBILITY_MAX_CONCURRENCY)
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def assess(self, item: SearchResultItem, query: str = "") -> CredibilityScore:
        """Credibility of one item.

        Meant for open-web items; registry and local results have their own
        fixed credibility and are not passed through here by the cascade.
        """
        domain = _bare_domain(item.metadata.get("domain") or _host_of(item.url))
        flags: List[CredibilityFlag] = []

        trust = domain_trust(domain)
        if any(_domain_matches(domain, d) for d in UNTRUSTED_DOMAINS):
            flags.append(CredibilityFlag(
                type=FlagType.FAKE_NEWS,
                severity=FlagSeverity.HIGH,
                reason="Domain known for spreading disinformation"
            ))
        if any(_domain_matches(domain, d) for d in SATIRE_DOMAINS):
            flags.append(CredibilityFlag(
                type=FlagType.SATIRE,
                severity=FlagSeverity.MEDIUM,
                reason="Satirical site, not a source of facts"
            ))

        estimate = await self._estimate_content(item, domain, query)

        published = parse_publish_date(item.metadata.get("publish_date"), self._now())
        freshness = self.freshness(published)
        if published is not None and self._age_days(published) > 2 * self.horizon_days:
            flags.append(CredibilityFlag(
                type=FlagType.OUTDATED,
                severity=FlagSeverity.LOW,
                reason=f"Published {int(self._age_days(published))} days ago"
            ))

        flags.extend(estimate.flags)

        content_quality = to_unit_score(estimate.quality, NEUTRAL_SCORE)
        factual_accuracy = to_unit_score(estimate.factual_accuracy, NEUTRAL_SCORE)
        bias_level = to_unit_score(estimate.bias_level, NEUTRAL_SCORE)

        overall = self._overall(trust, content_quality, factual_accuracy, bias_level, freshness, flags)

        return CredibilityScore(
            overall=overall,
            domain_trust=trust,
            content_quality=content_quality,
            factual_accuracy=factual_accuracy,
            bias_level=bias_level,
            freshness=freshness,
            flags=flags,
        )

    async def assess_many(self, items: List[SearchResultItem], query: str = "") -> List[CredibilityScore]:
        """Assess items concurrently, bounded by the assessor's semaphore"""
        return list(await asyncio.gather(*(self.assess(item, query) for item in items)))

    def is_reliable(self, score: CredibilityScore) -> bool:
        return score.overall >= self.min_reliable

    def freshness(self, published: Optional[datetime]) -> float:
        """1.0 for fresh content, decaying toward the floor past the horizon"""
        if published is None:
            return UNDATED_FRESHNESS
        age = self._age_days(published)
        if age <= 0:
            return 1.0
        floor = clamp_unit(self.freshness_floor, 0.0)
        return floor + (1.0 - floor) * math.exp(-age / self.horizon_days)

    def _age_days(self, published: datetime) -> float:
        return (self._now() - as_utc(published)).total_seconds() / 86400.0

    def _overall(
        self,
        trust: float,
        content_quality: float,
        factual_accuracy: float,
        bias_level: float,
        freshness: float,
        flags: List[CredibilityFlag],
    ) -> float:
        score = (
            WEIGHTS["domain_trust"] * trust
            + WEIGHTS["content_quality"] * content_quality
            + WEIGHTS["factual_accuracy"] * factual_accuracy
            + WEIGHTS["freshness"] * freshness
            + WEIGHTS["neutrality"] * (1.0 - bias_level)
        )

        if bias_level > HIGH_BIAS:
            score -= (bias_level - HIGH_BIAS) * 0.5

        for flag in flags:
            penalties = FLAG_PENALTIES.get(flag.type)
            if penalties:
                score -= penalties[0] if flag.severity == FlagSeverity.HIGH else penalties[1]

        for flag in flags:
            ceiling = FLAG_CEILINGS.get(flag.type)
            if flag.type == FlagType.FAKE_NEWS and flag.severity == FlagSeverity.HIGH:
                ceiling = HIGH_FAKE_NEWS_CEILING
            if ceiling is not None:
                score = min(score, ceiling)

        return clamp_unit(score, NEUTRAL_SCORE)

    async def _estimate_content(self, item: SearchResultItem, domain: str, query: str) -> ContentEstimate:
        """LLM content-quality estimate; any failure yields a neutral estimate"""
        if self.llm_client is None:
            return ContentEstimate()

        cache_key = hashlib.sha256(f"{item.url or item.title}|{query}".encode("utf-8")).hexdigest()
        cached = await self.cache.get(cache_key)
        if cached:
            return ContentEstimate.model_validate(cached)

        prompt = CONTENT_QUALITY_PROMPT.format(
            query=query.replace('"', "'"),
            domain=domain or "unknown",
            title=item.title.replace('"', "'"),
            content=(item.content or item.title)[:2000],
        )

        try:
            async with self._semaphore:
                raw = await self.llm_client.complete(prompt, json_mode=True)
            estimate = self._parse_estimate(raw)
        except (LLMClientException, CredibilityAssessmentException) as e:
            logger.warning(f"Content quality estimate failed for {item.url or item.title!r}, using neutral default: {e}")
            return ContentEstimate()
        except asyncio.TimeoutError:
            logger.warning(f"Content quality estimate timed out for {item.url or item.title!r}, using neutral default")
            return ContentEstimate()
        except Exception as e:
            logger.warning(f"Content quality estimate failed for {item.url or item.title!r}, using neutral default: "
                           f"{type(e).__name__}: {e}")
            return ContentEstimate()

        await self.cache.set(cache_key, estimate.model_dump(mode="json"))
        return estimate

    def _parse_estimate(self, raw: str) -> ContentEstimate:
        match = _JSON_OBJECT.search(raw or "")
        if not match:
            raise CredibilityAssessmentException("No JSON object in LLM response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise CredibilityAssessmentException(f"Malformed JSON in LLM response: {e}")
        if not isinstance(data, dict):
            raise CredibilityAssessmentException("LLM response is not a JSON object")

        raw_flags = data.pop("flags", None) or []
        if not isinstance(raw_flags, list):
            logger.warning(f"Ignoring non-list flags in LLM response: {raw_flags!r}")
            raw_flags = []

        flags = []
        for raw_flag in raw_flags:
            try:
                flag = CredibilityFlag.model_validate(raw_flag)
            except ValidationError:
                continue
            if flag.type in LLM_FLAG_TYPES:
                flags.append(flag)

        numeric = {}
        for field, aliases in (
            ("quality", ("quality", "content_quality", "contentQuality")),
            ("factual_accuracy", ("factual_accuracy", "factualAccuracy")),
            ("bias_level", ("bias_level", "biasLevel")),
        ):
            for alias in aliases:
                if data.get(alias) is not None:
                    numeric[field] = to_unit_score(data[alias], None)
                    break

        if not numeric:
            raise CredibilityAssessmentException("LLM response has no scores")

        return ContentEstimate(flags=flags, **numeric)


def warnings_for(score: CredibilityScore) -> List[str]:
    """Human-readable warnings for a credibility score"""
    warnings = []

    if score.domain_trust < 0.5:
        warnings.append("Low-credibility source")
    if score.bias_level > HIGH_BIAS:
        warnings.append("Content may be biased")
    if score.factual_accuracy < 0.5:
        warnings.append("Low factual accuracy, needs verification")

    for flag in score.flags:
        if flag.type == FlagType.FAKE_NEWS:
            warnings.append(f"Fake news: {flag.reason}")
        elif flag.type == FlagType.MISLEADING:
            warnings.append(f"Misleading: {flag.reason}")
        elif flag.type == FlagType.SATIRE:
            warnings.append("Satire, not a source of facts")
        elif flag.type == FlagType.OUTDATED:
            warnings.append("Information may be outdated")

    return warnings


def _host_of(url: Optional[str]) -> str:
    if not url:
        return ""
    return urlparse(url).hostname or ""
