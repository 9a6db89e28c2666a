# civic_search/services/cross_reference.py
"""Agreement and contradiction analysis of claims across sources"""

import logging
import re
from typing import Dict, List, Optional, Set, Tuple

from civic_search.config.settings import settings
from civic_search.models.internal import CrossReference, SearchResultItem, clamp_unit

logger = logging.getLogger(__name__)

HIGH_CREDIBILITY = 0.7
RELIABLE_SOURCES_FOR_FULL_CONFIDENCE = 3

NEGATION_MARKERS = {
    # English
    "not", "no", "never", "false", "denied", "deny", "denies",
    "didnt", "isnt", "wasnt", "doesnt", "arent", "werent", "wont",
    # Polish
    "nie", "nigdy", "nieprawda", "zaprzecza", "zaprzeczył", "zaprzeczyła", "brak",
}

STOPWORDS = {
    # English
    "a", "an", "the", "and", "or", "of", "on", "in", "at", "to", "for", "by", "with",
    "is", "are", "was", "were", "be", "been", "has", "have", "had", "did", "do", "does",
    "it", "its", "this", "that", "these", "those", "as", "from", "will", "would",
    # Polish
    "i", "w", "we", "z", "ze", "na", "do", "o", "od", "po", "za", "się", "jest", "są",
    "to", "ten", "ta", "że", "oraz", "dla", "przez", "jak", "czy", "który", "która",
}

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")
_NON_WORD = re.compile(r"[^\w\s]", re.UNICODE)
_APOSTROPHES = re.compile(r"['’]")


class Claim:
    __slots__ = ("text", "tokens", "negated", "source")

    def __init__(self, text: str, tokens: Set[str], negated: bool, source: str):
        self.text = text
        self.tokens = tokens
        self.negated = negated
        self.source = source


def source_key(item: SearchResultItem) -> str:
    """Identity of the source an item came from"""
    if item.url:
        return item.url.strip().lower()
    return f"{item.source_type.value}:{item.title.strip().lower()}"


def normalize_sentence(sentence: str) -> str:
    sentence = _APOSTROPHES.sub("", sentence.lower())
    sentence = _NON_WORD.sub(" ", sentence)
    return " ".join(sentence.split())


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


class CrossReferencer:
    """Cluster similar claims across items and count agreeing and negating sources"""

    def __init__(
        self,
        similarity_threshold: Optional[float] = None,
        max_claims_per_item: int = 5,
        min_claim_words: int = 4,
    ):
        threshold = settings.CROSS_REFERENCE_SIMILARITY if similarity_threshold is None else similarity_threshold
        if not 0.0 < threshold <= 1.0:
            raise ValueError("Similarity threshold must be in (0, 1]")
        self.similarity_threshold = threshold
        self.max_claims_per_item = max_claims_per_item
        self.min_claim_words = min_claim_words

    def extract_claims(self, item: SearchResultItem) -> List[Claim]:
        """Normalized sentences of an item that are long enough to state something"""
        text = item.content or item.title
        source = source_key(item)
        claims = []

        for sentence in _SENTENCE_SPLIT.split(text or ""):
            normalized = normalize_sentence(sentence)
            words = normalized.split()
            if len(words) < self.min_claim_words:
                continue

            negated = any(word in NEGATION_MARKERS for word in words)
            tokens = {w for w in words if w not in STOPWORDS and w not in NEGATION_MARKERS}
            if not tokens:
                continue

            claims.append(Claim(normalized, tokens, negated, source))
            if len(claims) >= self.max_claims_per_item:
                break

        return claims

    def cross_reference(self, items: List[SearchResultItem]) -> List[CrossReference]:
        """Claim clusters discussed by at least two distinct sources"""
        clusters: List[List[Claim]] = []

        for item in items:
            for claim in self.extract_claims(item):
                target = None
                for cluster in clusters:
                    if any(jaccard(claim.tokens, member.tokens) >= self.similarity_threshold for member in cluster):
                        target = cluster
                        break
                if target is None:
                    clusters.append([claim])
                else:
                    target.append(claim)

        references = []
        for cluster in clusters:
            reference = self._summarize(cluster)
            if reference is not None:
                references.append(reference)

        logger.debug(f"Cross-referenced {len(items)} items into {len(references)} claim clusters")
        return references

    def _summarize(self, cluster: List[Claim]) -> Optional[CrossReference]:
        stances: Dict[str, bool] = {}
        for claim in cluster:
            # A source that negates the claim anywhere counts as contradicting
            stances[claim.source] = stances.get(claim.source, False) or claim.negated

        if len(stances) < 2:
            return None

        supporting = sum(1 for negated in stances.values() if not negated)
        contradicting = len(stances) - supporting
        representative = next((c for c in cluster if not c.negated), cluster[0])

        return CrossReference(
            claim=representative.text,
            supporting_sources=supporting,
            contradicting_sources=contradicting,
            confidence=supporting / (supporting + contradicting),
            verified=supporting >= 2,
            sources=list(stances),
        )

    def overall_confidence(self, items: List[SearchResultItem], references: List[CrossReference]) -> float:
        """Confidence in the answer set as a whole.

        Mean item trust, scaled by how many reliable items back it, and pulled
        down when otherwise credible sources contradict each other.
        """
        if not items:
            return 0.0

        trust_by_source: Dict[str, float] = {}
        scores = []
        for item in items:
            score = item.credibility if item.credibility is not None else item.relevance
            scores.append(score)
            trust_by_source.setdefault(source_key(item), score)

        confidence = sum(scores) / len(scores)

        reliable = sum(1 for score in scores if score >= HIGH_CREDIBILITY)
        confidence *= 0.7 + 0.3 * min(1.0, reliable / RELIABLE_SOURCES_FOR_FULL_CONFIDENCE)

        if references:
            contested = 0
            for reference in references:
                if not reference.contradicting_sources:
                    continue
                trust = [trust_by_source[s] for s in reference.sources if s in trust_by_source]
                if trust and sum(trust) / len(trust) >= HIGH_CREDIBILITY:
                    contested += 1
            confidence *= 1.0 - 0.5 * (contested / len(references))

        return clamp_unit(confidence, 0.0)


def contradiction_summary(references: List[CrossReference]) -> Tuple[int, int]:
    """(clusters with contradictions, verified clusters)"""
    contradicted = sum(1 for r in references if r.contradicting_sources)
    verified = sum(1 for r in references if r.verified)
    return contradicted, verified
