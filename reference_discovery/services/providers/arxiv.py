from typing import Any, Dict, List, Optional

import feedparser
import structlog

from reference_discovery.models.reference import RawResult
from reference_discovery.models.search import SearchOptions
from reference_discovery.services.providers.base import ReferenceProvider
from reference_discovery.utils.exceptions import ParsingError

logger = structlog.get_logger()


class ArxivProvider(ReferenceProvider):
    """Search for preprints using the arXiv Atom API"""

    BASE_URL = "https://export.arxiv.org/api/query"
    base_confidence = 0.5

    @property
    def name(self) -> str:
        """Provider name"""
        return "arxiv"

    async def execute(self, query: str, options: SearchOptions) -> List[RawResult]:
        params = self._build_query_params(query, options)
        text = await self._fetch(self.BASE_URL, params=params)

        # feedparser parses the already fetched body, so no blocking I/O here
        feed = feedparser.parse(text)
        if feed.bozo and not feed.entries:
            raise ParsingError(
                f"Invalid Atom feed: {feed.get('bozo_exception')}", provider=self.name
            )
        if feed.bozo:
            logger.warning(
                "arxiv_feed_parse_warning", error=str(feed.get("bozo_exception"))
            )

        results = self._parse_feed(feed)[: options.max_results]

        logger.info(
            "papers_discovered",
            query=query,
            count=len(results),
            provider=self.name,
        )
        return results

    def _build_query_params(self, query: str, options: SearchOptions) -> dict:
        """Build arXiv query parameters"""
        search_query = f"all:{query}"

        if options.year_start or options.year_end:
            start = f"{options.year_start or 1900}01010000"
            end = f"{options.year_end or 3000}12312359"
            search_query = f"{search_query} AND submittedDate:[{start} TO {end}]"

        params: Dict[str, Any] = {
            "search_query": search_query,
            "start": 0,
            "max_results": options.max_results,
        }
        if options.sort_by == "date":
            params["sortBy"] = "submittedDate"
            params["sortOrder"] = "descending"
        else:
            params["sortBy"] = "relevance"
            params["sortOrder"] = "descending"
        return params

    def _parse_feed(self, feed: Any) -> List[RawResult]:
        results = []
        for entry in feed.entries:
            try:
                result = self._parse_entry(entry)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "arxiv_entry_parse_error",
                    error=str(e),
                    entry_id=entry.get("id", "unknown"),
                )
                continue
            if result is not None:
                results.append(result)
        return results

    def _parse_entry(self, entry: Any) -> Optional[RawResult]:
        title = " ".join((entry.get("title") or "").split())
        summary = " ".join((entry.get("summary") or "").split())
        authors = [
            a.get("name", "").strip()
            for a in entry.get("authors", [])
            if a.get("name", "").strip()
        ]

        year = None
        published = entry.get("published_parsed")
        if published:
            year = published.tm_year

        return self._build_result(
            title=title,
            authors=authors,
            journal=entry.get("arxiv_journal_ref") or "arXiv",
            year=year,
            doi=entry.get("arxiv_doi"),
            url=entry.get("link") or entry.get("id"),
            abstract=summary or None,
            keywords=[t.get("term") for t in entry.get("tags", []) if t.get("term")],
            relevance=0.5,
        )
