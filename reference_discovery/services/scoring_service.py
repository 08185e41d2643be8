"""Result scoring and ranking for merged references.

Each merged reference receives three sub-scores in [0, 1]:
- Relevance: similarity to the user's content summary
- Quality: citations, recency, authorship, venue and completeness
- Confidence: metadata completeness, source reliability, extraction quality

The overall score is their weighted sum. Scoring is deterministic: the only
time input is the reference year used for recency.
"""

import math
import re
from datetime import datetime
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence, Union
from urllib.parse import urlparse

import structlog
import yaml
from rapidfuzz import fuzz

from reference_discovery.models.content import ContentSummary
from reference_discovery.models.reference import MergedResult
from reference_discovery.models.scoring import (
    ConfidenceBreakdown,
    QualityBreakdown,
    RankedResult,
    RelevanceBreakdown,
    ScoringBreakdown,
    ScoringWeights,
)
from reference_discovery.utils.text import STOP_WORDS, jaccard, normalize_text

logger = structlog.get_logger()

DEFAULT_TOP_JOURNALS_PATH = Path(__file__).parent.parent / "data" / "top_journals.yaml"

BUILTIN_TOP_JOURNALS = frozenset(
    name.lower()
    for name in (
        "Nature",
        "Science",
        "Cell",
        "The Lancet",
        "New England Journal of Medicine",
        "JAMA",
        "Proceedings of the National Academy of Sciences",
        "Journal of the American Chemical Society",
        "Physical Review Letters",
        "Nature Medicine",
        "Nature Biotechnology",
        "Nature Genetics",
        "Cell Metabolism",
        "Immunity",
        "Neuron",
    )
)

ACADEMIC_DOMAINS = (
    "scholar.google.com",
    "pubmed.ncbi.nlm.nih.gov",
    "ieee.org",
    "acm.org",
    "springer.com",
    "wiley.com",
    "elsevier.com",
    "nature.com",
    "science.org",
    "jstor.org",
    "arxiv.org",
    "researchgate.net",
)

# Journal name substrings by tier, checked top to bottom
JOURNAL_TIERS = (
    (0.85, ("ieee", "acm")),
    (0.75, ("springer", "wiley", "elsevier", "taylor")),
    (0.65, ("university", "press", "society", "association")),
    (0.6, ("proceedings", "conference", "symposium", "workshop")),
    (0.5, ("journal", "review", "letters", "communications")),
    (0.4, ("arxiv", "preprint", "working paper")),
)
UNKNOWN_JOURNAL_SCORE = 0.3

ACADEMIC_MORPHEMES = (
    re.compile(r"\b\w*ology\b"),
    re.compile(r"\b\w*tion\b"),
    re.compile(r"\b\w*ment\b"),
    re.compile(r"\b\w*ness\b"),
    re.compile(r"\b\w*ism\b"),
    re.compile(r"\b\w*ity\b"),
    re.compile(r"\b\w{6,}\b"),
)

_CREDENTIALS = re.compile(r"\b(prof|professor|dr|phd|md|ph\.d|m\.d)\b", re.IGNORECASE)
_INSTITUTIONS = re.compile(
    r"\b(university|institute|college|lab|laboratory)\b", re.IGNORECASE
)

# Completeness points; the maximum is 8.5
COMPLETENESS_POINTS = {
    "title": 2.0,
    "authors": 2.0,
    "year": 1.0,
    "journal": 1.0,
    "abstract": 1.0,
    "doi": 0.5,
    "url": 0.5,
    "citations": 0.5,
}
COMPLETENESS_TOTAL = sum(COMPLETENESS_POINTS.values())


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def load_top_journals(path: Union[str, Path, None] = None) -> FrozenSet[str]:
    """Load the top-tier journal allow-list from YAML.

    Args:
        path: Path to the journals YAML. Uses the packaged file if None.

    Returns:
        Lowercased journal names; the built-in list when the file is
        missing or invalid
    """
    journals_path = Path(path) if path else DEFAULT_TOP_JOURNALS_PATH

    if not journals_path.exists():
        logger.warning("top_journals_file_not_found", path=str(journals_path))
        return BUILTIN_TOP_JOURNALS

    try:
        with open(journals_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not data or not data.get("journals"):
            logger.warning("top_journals_file_empty", path=str(journals_path))
            return BUILTIN_TOP_JOURNALS

        journals = frozenset(str(name).strip().lower() for name in data["journals"])
        logger.info("top_journals_loaded", count=len(journals))
        return journals
    except yaml.YAMLError as e:
        logger.error("top_journals_parse_error", path=str(journals_path), error=str(e))
        return BUILTIN_TOP_JOURNALS
    except (AttributeError, TypeError) as e:
        logger.error("top_journals_value_error", path=str(journals_path), error=str(e))
        return BUILTIN_TOP_JOURNALS


def fold_summaries(
    summaries: Union[ContentSummary, Sequence[ContentSummary]],
) -> ContentSummary:
    """Fold several summaries into one: texts joined, term lists unioned."""
    if isinstance(summaries, ContentSummary):
        return summaries
    if len(summaries) == 1:
        return summaries[0]

    def union(lists: Sequence[List[str]]) -> List[str]:
        return list(dict.fromkeys(term for terms in lists for term in terms))

    return ContentSummary(
        title=" ".join(s.title for s in summaries if s.title),
        content=" ".join(s.content for s in summaries if s.content),
        keywords=union([s.keywords for s in summaries]),
        topics=union([s.topics for s in summaries]),
        key_phrases=union([s.key_phrases for s in summaries]),
        confidence=(
            sum(s.confidence for s in summaries) / len(summaries) if summaries else 0.5
        ),
    )


class ResultScoringEngine:
    """Score merged references against a content summary and rank them.

    Example:
        engine = ResultScoringEngine()
        ranked = engine.score_and_rank(merged, summaries, current_year=2024)
        best = ranked[0]
    """

    def __init__(self, top_journals_path: Union[str, Path, None] = None):
        self.top_journals = load_top_journals(top_journals_path)

    def score_and_rank(
        self,
        results: Sequence[MergedResult],
        summaries: Union[ContentSummary, Sequence[ContentSummary]],
        weights: Optional[ScoringWeights] = None,
        current_year: Optional[int] = None,
    ) -> List[RankedResult]:
        """Score every result and sort by overall score, best first.

        Ties keep their input order. Ranks are 1-based and contiguous.
        """
        summary = fold_summaries(summaries)
        weights = weights or ScoringWeights()
        year = current_year or datetime.now().year

        scored = [self.score_result(r, summary, weights, year) for r in results]
        scored.sort(key=lambda r: r.overall_score, reverse=True)

        ranked = [r.model_copy(update={"rank": i + 1}) for i, r in enumerate(scored)]

        logger.info(
            "results_ranked",
            count=len(ranked),
            top_score=round(ranked[0].overall_score, 4) if ranked else None,
        )
        return ranked

    def score_result(
        self,
        result: MergedResult,
        summary: ContentSummary,
        weights: Optional[ScoringWeights] = None,
        current_year: Optional[int] = None,
    ) -> RankedResult:
        """Score a single result. The returned rank is provisional (1)."""
        weights = weights or ScoringWeights()
        year = current_year or datetime.now().year

        relevance = self.relevance_breakdown(result, summary)
        quality = self.quality_breakdown(result, year)
        confidence = self.confidence_breakdown(result)

        relevance_score = self._relevance_from(relevance)
        quality_score = self._quality_from(quality)
        confidence_score = self._confidence_from(confidence)
        overall = _clamp(
            relevance_score * weights.relevance
            + quality_score * weights.quality
            + confidence_score * weights.confidence
        )

        return RankedResult(
            **result.model_dump(),
            relevance_score=relevance_score,
            quality_score=quality_score,
            confidence_score=confidence_score,
            overall_score=overall,
            breakdown=ScoringBreakdown(
                relevance=relevance, quality=quality, confidence=confidence
            ),
            rank=1,
        )

    # ------------------------------------------------------------------
    # Relevance
    # ------------------------------------------------------------------

    def score_relevance(self, result: MergedResult, summary: ContentSummary) -> float:
        return self._relevance_from(self.relevance_breakdown(result, summary))

    @staticmethod
    def _relevance_from(b: RelevanceBreakdown) -> float:
        return _clamp(
            b.text_similarity * 0.3
            + b.keyword_match * 0.3
            + b.topic_overlap * 0.25
            + b.semantic_similarity * 0.15
        )

    def relevance_breakdown(
        self, result: MergedResult, summary: ContentSummary
    ) -> RelevanceBreakdown:
        return RelevanceBreakdown(
            text_similarity=self.text_similarity(result, summary),
            keyword_match=jaccard(
                self.result_keywords(result), {k.lower() for k in summary.keywords}
            ),
            topic_overlap=jaccard(
                self.result_topics(result), {t.lower() for t in summary.topics}
            ),
            semantic_similarity=self.semantic_similarity(result, summary),
        )

    @staticmethod
    def text_similarity(result: MergedResult, summary: ContentSummary) -> float:
        result_text = normalize_text(f"{result.title} {result.abstract or ''}")
        content_text = normalize_text(summary.content)
        if not result_text or not content_text:
            return 0.0

        similarity = fuzz.ratio(result_text, content_text) / 100

        result_words = {w for w in result_text.split() if len(w) > 4}
        content_words = {w for w in content_text.split() if len(w) > 4}
        common = result_words & content_words
        if common:
            similarity += min(0.3, len(common) * 0.1)
        return _clamp(similarity)

    @staticmethod
    def result_keywords(result: MergedResult) -> List[str]:
        """Provider keywords plus content words of title and abstract."""
        words = [k.lower() for k in result.keywords]
        words += [
            w
            for w in normalize_text(f"{result.title} {result.abstract or ''}").split()
            if len(w) >= 4 and w not in STOP_WORDS
        ]
        return list(dict.fromkeys(words))[:15]

    @staticmethod
    def result_topics(result: MergedResult) -> List[str]:
        """Significant words of the journal name and the title."""
        topics = [
            w
            for w in normalize_text(result.journal).split()
            if len(w) > 3 and w not in STOP_WORDS
        ]
        topics += [
            w
            for w in normalize_text(result.title).split()
            if len(w) > 5 and w not in STOP_WORDS
        ]
        return list(dict.fromkeys(topics))[:8]

    @staticmethod
    def academic_morphemes(text: str) -> List[str]:
        normalized = normalize_text(text)
        terms: List[str] = []
        for pattern in ACADEMIC_MORPHEMES:
            terms.extend(t for t in pattern.findall(normalized) if t not in STOP_WORDS)
        return list(dict.fromkeys(terms))[:10]

    def semantic_similarity(
        self, result: MergedResult, summary: ContentSummary
    ) -> float:
        result_terms = set(self.academic_morphemes(result.abstract or result.title))
        content_terms = set(self.academic_morphemes(summary.content))
        if not result_terms or not content_terms:
            return 0.0
        return len(result_terms & content_terms) / max(
            len(result_terms), len(content_terms)
        )

    # ------------------------------------------------------------------
    # Quality
    # ------------------------------------------------------------------

    def score_quality(
        self, result: MergedResult, current_year: Optional[int] = None
    ) -> float:
        year = current_year or datetime.now().year
        return self._quality_from(self.quality_breakdown(result, year))

    @staticmethod
    def _quality_from(b: QualityBreakdown) -> float:
        return _clamp(
            b.citation_score * 0.3
            + b.recency_score * 0.2
            + b.author_authority * 0.2
            + b.journal_quality * 0.2
            + b.completeness_score * 0.1
        )

    def quality_breakdown(
        self, result: MergedResult, current_year: int
    ) -> QualityBreakdown:
        return QualityBreakdown(
            citation_score=self.citation_score(result.citations or 0),
            recency_score=self.recency_score(result.year, current_year),
            author_authority=self.author_authority(result.authors),
            journal_quality=self.journal_quality(result.journal),
            completeness_score=self.completeness(result),
        )

    @staticmethod
    def citation_score(citations: int) -> float:
        if citations <= 0:
            return 0.1
        if citations <= 10:
            return 0.2 + (citations / 10) * 0.3
        if citations <= 50:
            return 0.5 + ((citations - 10) / 40) * 0.2
        if citations <= 100:
            return 0.7 + ((citations - 50) / 50) * 0.1
        return min(1.0, 0.8 + math.log10(citations / 100) * 0.2)

    @staticmethod
    def recency_score(year: Optional[int], current_year: int) -> float:
        if not year:
            return 0.3

        age = current_year - year
        if age <= 1:
            return 1.0
        if age <= 3:
            return 0.9
        if age <= 5:
            return 0.8
        if age <= 10:
            return 0.6
        if age <= 15:
            return 0.4
        if age <= 25:
            return 0.3
        return 0.2

    @staticmethod
    def author_authority(authors: List[str]) -> float:
        authors = [a for a in authors if a.strip()]
        if not authors:
            return 0.2

        score = 0.4
        if 3 <= len(authors) <= 8:
            score += 0.2
        elif len(authors) > 8:
            score += 0.1
        elif len(authors) == 1:
            score -= 0.1

        if any(_CREDENTIALS.search(a) for a in authors):
            score += 0.2
        if any(_INSTITUTIONS.search(a) for a in authors):
            score += 0.1

        return _clamp(score, 0.1, 1.0)

    def journal_quality(self, journal: Optional[str]) -> float:
        if not journal or not journal.strip():
            return UNKNOWN_JOURNAL_SCORE

        lower = journal.strip().lower()
        if lower in self.top_journals:
            return 1.0
        if "nature" in lower and "communications" not in lower:
            return 0.95
        if "science" in lower and "journal" in lower:
            return 0.9
        for score, markers in JOURNAL_TIERS:
            if any(marker in lower for marker in markers):
                return score
        return UNKNOWN_JOURNAL_SCORE

    @staticmethod
    def completeness(result: MergedResult) -> float:
        points = 0.0
        if result.title.strip():
            points += COMPLETENESS_POINTS["title"]
        if any(a.strip() for a in result.authors):
            points += COMPLETENESS_POINTS["authors"]
        for field in ("year", "journal", "abstract", "doi", "url"):
            if getattr(result, field):
                points += COMPLETENESS_POINTS[field]
        if result.citations is not None:
            points += COMPLETENESS_POINTS["citations"]
        return points / COMPLETENESS_TOTAL

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def score_confidence(self, result: MergedResult) -> float:
        return self._confidence_from(self.confidence_breakdown(result))

    @staticmethod
    def _confidence_from(b: ConfidenceBreakdown) -> float:
        return _clamp(
            b.metadata_completeness * 0.4
            + b.source_reliability * 0.4
            + b.extraction_quality * 0.2,
            0.1,
            1.0,
        )

    def confidence_breakdown(self, result: MergedResult) -> ConfidenceBreakdown:
        return ConfidenceBreakdown(
            metadata_completeness=self.completeness(result),
            source_reliability=self.source_reliability(result),
            extraction_quality=self.extraction_quality(result),
        )

    @staticmethod
    def source_reliability(result: MergedResult) -> float:
        score = 0.5

        if result.url:
            host = (urlparse(result.url).hostname or "").lower()
            if any(host == d or host.endswith("." + d) for d in ACADEMIC_DOMAINS):
                score += 0.3
            elif host.endswith(".edu") or ".edu." in host or ".ac." in host:
                score += 0.2

        if result.doi:
            score += 0.2
        if result.journal and "preprint" not in result.journal.lower():
            score += 0.1

        return _clamp(score, 0.1, 1.0)

    @staticmethod
    def extraction_quality(result: MergedResult) -> float:
        score = 0.5
        has_title = bool(result.title.strip())
        has_authors = any(a.strip() for a in result.authors)

        if result.confidence < 0.5:
            score -= 0.2
        if has_title and has_authors and result.year:
            score += 0.3
        if has_title and (
            len(result.title) < 10 or "..." in result.title or "…" in result.title
        ):
            score -= 0.2
        if not has_title or not has_authors:
            score -= 0.3

        return _clamp(score, 0.1, 1.0)
