"""
Reference deduplication service.

Multi-rule duplicate detection, applied to every pair of raw results:
1. Normalised DOI equality
2. Normalised URL equality
3. Title similarity plus author overlap
4. Weighted fuzzy score (title, authors, year proximity, journal)

Matches are grouped transitively (union-find), and every group is merged
into a single MergedResult under the configured merge strategy.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog

from reference_discovery.models.dedup import DedupConfig, DedupStats
from reference_discovery.models.reference import (
    ConflictValue,
    DuplicateGroup,
    FieldConflict,
    MatchStrategy,
    MergedResult,
    RawResult,
)
from reference_discovery.observability.metrics import DUPLICATES_MERGED
from reference_discovery.utils.text import (
    is_valid_doi,
    jaccard,
    normalize_doi,
    normalize_text,
    normalize_url,
    string_similarity,
)

logger = structlog.get_logger()

DOI_MATCH_CONFIDENCE = 1.0
URL_MATCH_CONFIDENCE = 0.95

# Fields compared when recording merge conflicts
CONFLICT_FIELDS = (
    "title",
    "authors",
    "journal",
    "year",
    "doi",
    "url",
    "abstract",
    "citations",
)

# Scalar fields whose source record is tracked in field_sources
SOURCED_FIELDS = ("title", "journal", "year", "doi", "url", "abstract", "citations")


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def _unique_by_normalized(values: List[str]) -> List[str]:
    """Union preserving first spelling, deduplicated by normalised form."""
    seen: Dict[str, str] = {}
    for value in values:
        if not value or not value.strip():
            continue
        key = normalize_text(value)
        if key not in seen:
            seen[key] = value.strip()
    return list(seen.values())


class _UnionFind:
    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, i: int, j: int) -> int:
        root_i, root_j = self.find(i), self.find(j)
        # The smaller index stays root so a component's root is its first member
        root, child = min(root_i, root_j), max(root_i, root_j)
        self.parent[child] = root
        return root


class DuplicateDetectionEngine:
    """
    Detect and merge duplicate references across providers.

    Stateless between calls apart from the statistics of the last run.
    """

    def __init__(
        self, config: Optional[DedupConfig] = None, current_year: Optional[int] = None
    ):
        """
        Initialize deduplication engine.

        Args:
            config: Deduplication configuration
            current_year: Upper bound for plausible publication years
        """
        self.config = config or DedupConfig()
        self.current_year = current_year or datetime.now().year
        self.stats = DedupStats()

    # ------------------------------------------------------------------
    # Pair matching
    # ------------------------------------------------------------------

    def match(
        self, first: RawResult, second: RawResult
    ) -> Optional[Tuple[float, MatchStrategy]]:
        """Decide whether two results describe the same paper.

        Returns:
            (confidence, strategy) of the first rule that matches, or None
        """
        doi_a, doi_b = normalize_doi(first.doi), normalize_doi(second.doi)
        if doi_a and doi_b:
            if doi_a == doi_b:
                return DOI_MATCH_CONFIDENCE, "doi"
            if self.config.strict_doi_matching:
                return None

        url_a, url_b = normalize_url(first.url), normalize_url(second.url)
        if url_a and url_a == url_b:
            return URL_MATCH_CONFIDENCE, "url"

        title_sim = string_similarity(first.title, second.title)
        author_sim = self.author_similarity(first.authors, second.authors)
        if (
            title_sim >= self.config.title_similarity_threshold
            and author_sim >= self.config.author_similarity_threshold
        ):
            return (title_sim + author_sim) / 2, "title_author"

        if self.config.enable_fuzzy_matching:
            score = self.fuzzy_score(first, second, title_sim, author_sim)
            if score >= self.config.fuzzy_threshold:
                return score, "fuzzy"

        return None

    @staticmethod
    def author_similarity(first: List[str], second: List[str]) -> float:
        """Jaccard overlap of normalised author names."""
        names_a = {normalize_text(a) for a in first if a.strip()}
        names_b = {normalize_text(b) for b in second if b.strip()}
        if not names_a or not names_b:
            return 1.0 if names_a == names_b else 0.5
        return jaccard(names_a, names_b)

    def fuzzy_score(
        self,
        first: RawResult,
        second: RawResult,
        title_sim: Optional[float] = None,
        author_sim: Optional[float] = None,
    ) -> float:
        if title_sim is None:
            title_sim = string_similarity(first.title, second.title)
        if author_sim is None:
            author_sim = self.author_similarity(first.authors, second.authors)

        year_sim = 1.0
        if first.year and second.year:
            diff = abs(first.year - second.year)
            if self.config.year_tolerance == 0:
                year_sim = 1.0 if diff == 0 else 0.0
            else:
                year_sim = max(0.0, 1 - diff / self.config.year_tolerance)

        journal_sim = 0.5  # neutral if one is missing
        if first.journal and second.journal:
            journal_sim = string_similarity(first.journal, second.journal)

        return title_sim * 0.4 + author_sim * 0.3 + year_sim * 0.2 + journal_sim * 0.1

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------

    def _components(
        self, results: List[RawResult]
    ) -> List[Tuple[List[int], float, Optional[MatchStrategy]]]:
        """Connected components in order of first member.

        Each entry holds member indices (input order) and the confidence
        and strategy of the strongest edge in the component.
        """
        uf = _UnionFind(len(results))
        best_edge: Dict[int, Tuple[float, MatchStrategy]] = {}

        for i in range(len(results)):
            for j in range(i + 1, len(results)):
                if uf.find(i) == uf.find(j):
                    continue
                matched = self.match(results[i], results[j])
                if matched is None:
                    continue

                edges = [matched]
                for root in (uf.find(i), uf.find(j)):
                    if root in best_edge:
                        edges.append(best_edge.pop(root))
                root = uf.union(i, j)
                best_edge[root] = max(edges, key=lambda edge: edge[0])

        members: Dict[int, List[int]] = {}
        for index in range(len(results)):
            members.setdefault(uf.find(index), []).append(index)

        components = []
        for root in sorted(members):
            confidence, strategy = best_edge.get(root, (1.0, None))
            components.append((members[root], confidence, strategy))
        return components

    def detect_duplicates(self, results: List[RawResult]) -> List[DuplicateGroup]:
        """Group results describing the same paper (groups of two or more)."""
        groups = []
        for indices, confidence, strategy in self._components(results):
            if strategy is None:
                continue
            groups.append(
                DuplicateGroup(
                    primary=results[indices[0]],
                    duplicates=[results[i] for i in indices[1:]],
                    confidence=min(1.0, confidence),
                    strategy=strategy,
                )
            )
        return groups

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def merge_group(self, group: DuplicateGroup) -> MergedResult:
        """Merge a duplicate group into one record under the merge strategy."""
        members = group.members
        primary = group.primary

        values: Dict[str, Any] = primary.model_dump(exclude={"result_id"})
        sources: Dict[str, str] = {
            field: primary.result_id
            for field in SOURCED_FIELDS
            if not _is_empty(getattr(primary, field))
        }

        strategy = self.config.merge_strategy
        if strategy == "keep_highest_quality":
            self._merge_by_quality(values, sources, members)
        elif strategy == "keep_most_complete":
            self._merge_by_completeness(values, sources, members)

        conflicts = self.find_conflicts(members)

        return MergedResult(
            **values,
            result_id=primary.result_id,
            providers=list(dict.fromkeys(m.provider for m in members)),
            merged_from=[m.result_id for m in members],
            merge_confidence=group.confidence,
            conflicting_fields=[c.field for c in conflicts],
            conflicts=conflicts,
            field_sources=sources,
        )

    def _merge_by_quality(
        self, values: Dict[str, Any], sources: Dict[str, str], members: List[RawResult]
    ) -> None:
        # DOI: first valid one
        for member in members:
            if is_valid_doi(member.doi):
                self._take(values, sources, "doi", member)
                break

        self._take_max_citations(values, sources, members)

        years = [m.year for m in members if m.year]
        if years:
            best_year = self.select_best_year(years)
            source = next(m for m in members if m.year == best_year)
            self._take(values, sources, "year", source)

        # Abstract: longest, first one on ties
        longest: Optional[RawResult] = None
        for member in members:
            if member.abstract and member.abstract.strip():
                if longest is None or len(member.abstract) > len(longest.abstract):
                    longest = member
        if longest is not None:
            self._take(values, sources, "abstract", longest)

        for field in ("journal", "url"):
            source = next(
                (m for m in members if getattr(m, field) and getattr(m, field).strip()),
                None,
            )
            if source is not None:
                self._take(values, sources, field, source)

        values["authors"] = _unique_by_normalized(
            [a for m in members for a in m.authors]
        )
        values["keywords"] = _unique_by_normalized(
            [k for m in members for k in m.keywords]
        )
        values["confidence"] = sum(m.confidence for m in members) / len(members)
        values["relevance"] = sum(m.relevance for m in members) / len(members)

    def _merge_by_completeness(
        self, values: Dict[str, Any], sources: Dict[str, str], members: List[RawResult]
    ) -> None:
        for field in ("doi", "url", "abstract", "journal", "year"):
            source = next(
                (m for m in members if not _is_empty(getattr(m, field))), None
            )
            if source is not None:
                self._take(values, sources, field, source)

        self._take_max_citations(values, sources, members)
        values["authors"] = _unique_by_normalized(
            [a for m in members for a in m.authors]
        )
        values["keywords"] = _unique_by_normalized(
            [k for m in members for k in m.keywords]
        )

    @staticmethod
    def _take(
        values: Dict[str, Any], sources: Dict[str, str], field: str, source: RawResult
    ) -> None:
        values[field] = getattr(source, field)
        sources[field] = source.result_id

    def _take_max_citations(
        self, values: Dict[str, Any], sources: Dict[str, str], members: List[RawResult]
    ) -> None:
        cited = [m for m in members if m.citations is not None]
        if cited:
            best = max(cited, key=lambda m: m.citations)
            self._take(values, sources, "citations", best)

    def select_best_year(self, years: List[int]) -> int:
        """Most frequent plausible year; the most recent one on ties."""
        valid = [y for y in years if 1900 <= y <= self.current_year + 1]
        if not valid:
            return years[0]
        counts = Counter(valid)
        top = max(counts.values())
        return max(year for year, count in counts.items() if count == top)

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def find_conflicts(self, members: List[RawResult]) -> List[FieldConflict]:
        """Fields on which the members disagree, with candidate values."""
        conflicts = []
        for field in CONFLICT_FIELDS:
            unique: Dict[str, ConflictValue] = {}
            for member in members:
                value = getattr(member, field)
                if _is_empty(value):
                    continue
                key = self._value_key(field, value)
                if key not in unique or unique[key].confidence < member.confidence:
                    unique[key] = ConflictValue(
                        value=value,
                        source=member.result_id,
                        confidence=member.confidence,
                    )

            if len(unique) > 1:
                candidates = list(unique.values())
                conflicts.append(
                    FieldConflict(
                        field=field,
                        values=candidates,
                        suggested_resolution=self._suggest_resolution(field, candidates),
                    )
                )
        return conflicts

    @staticmethod
    def _value_key(field: str, value: Any) -> str:
        if isinstance(value, list):
            return "|".join(sorted(normalize_text(v) for v in value))
        if field == "doi":
            return normalize_doi(value)
        if field == "url":
            return normalize_url(value)
        if field == "title":
            return normalize_text(value)
        if isinstance(value, str):
            return value.strip().lower()
        return str(value)

    @staticmethod
    def _suggest_resolution(field: str, candidates: List[ConflictValue]) -> Any:
        if field == "citations":
            return max(c.value for c in candidates)
        if field == "authors":
            return _unique_by_normalized([a for c in candidates for a in c.value])
        # Highest confidence, first candidate on ties
        return sorted(candidates, key=lambda c: -c.confidence)[0].value

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def _passthrough(self, result: RawResult) -> MergedResult:
        return MergedResult(
            **result.model_dump(),
            providers=[result.provider],
            merged_from=[result.result_id],
            merge_confidence=1.0,
            field_sources={
                field: result.result_id
                for field in SOURCED_FIELDS
                if not _is_empty(getattr(result, field))
            },
        )

    def deduplicate(self, results: List[RawResult]) -> List[MergedResult]:
        """
        Collapse raw results into one MergedResult per distinct paper.

        Every input appears in exactly one output's merged_from; outputs
        follow the order of each group's first member.

        Args:
            results: Raw results from all providers, in search order

        Returns:
            Merged results, singletons included
        """
        stats = DedupStats(total_results_checked=len(results))
        merged: List[MergedResult] = []

        for indices, confidence, strategy in self._components(results):
            if strategy is None:
                merged.append(self._passthrough(results[indices[0]]))
                continue

            group = DuplicateGroup(
                primary=results[indices[0]],
                duplicates=[results[i] for i in indices[1:]],
                confidence=min(1.0, confidence),
                strategy=strategy,
            )
            record = self.merge_group(group)
            merged.append(record)

            folded = len(group.duplicates)
            stats.groups_found += 1
            stats.duplicates_merged += folded
            stats.conflicts_recorded += len(record.conflicts)
            field = f"duplicates_by_{strategy}"
            setattr(stats, field, getattr(stats, field) + folded)
            DUPLICATES_MERGED.labels(strategy=strategy).inc(folded)

            logger.debug(
                "duplicate_group_merged",
                primary_id=group.primary.result_id,
                title=group.primary.title[:50],
                strategy=strategy,
                size=len(indices),
                conflicts=record.conflicting_fields,
            )

        self.stats = stats
        logger.info(
            "deduplication_complete",
            total=stats.total_results_checked,
            distinct=len(merged),
            duplicates=stats.duplicates_merged,
            by_doi=stats.duplicates_by_doi,
            by_url=stats.duplicates_by_url,
            by_title_author=stats.duplicates_by_title_author,
            by_fuzzy=stats.duplicates_by_fuzzy,
            dedup_rate=f"{stats.dedup_rate:.1%}",
        )
        return merged
