from typing import Any, Dict, List, Optional

import structlog

from reference_discovery.models.reference import RawResult
from reference_discovery.models.search import SearchOptions
from reference_discovery.services.providers.base import ReferenceProvider
from reference_discovery.utils.exceptions import ParsingError

logger = structlog.get_logger()


class SemanticScholarProvider(ReferenceProvider):
    """Search for papers using Semantic Scholar API"""

    BASE_URL = "https://api.semanticscholar.org/graph/v1/paper/search"
    FIELDS = (
        "title,authors,venue,journal,year,abstract,citationCount,url,externalIds"
    )
    base_confidence = 0.55

    def __init__(self, api_key: Optional[str] = None, timeout_seconds: float = 30.0):
        super().__init__(timeout_seconds)
        self.api_key = api_key

    @property
    def name(self) -> str:
        """Provider name"""
        return "semantic_scholar"

    async def execute(self, query: str, options: SearchOptions) -> List[RawResult]:
        params = self._build_query_params(query, options)
        headers = {"x-api-key": self.api_key} if self.api_key else None

        data = await self._fetch_json(self.BASE_URL, params=params, headers=headers)
        results = self._parse_response(data)[: options.max_results]

        logger.info(
            "papers_discovered",
            query=query,
            count=len(results),
            provider=self.name,
        )
        return results

    def _build_query_params(self, query: str, options: SearchOptions) -> dict:
        """Convert search options to API parameters"""
        params: Dict[str, Any] = {
            "query": query,
            "limit": options.max_results,
            "fields": self.FIELDS,
        }

        if options.year_start or options.year_end:
            start = options.year_start or ""
            end = options.year_end or ""
            params["year"] = f"{start}-{end}"

        return params

    def _parse_response(self, data: Any) -> List[RawResult]:
        """Parse API response into RawResult models"""
        if not isinstance(data, dict):
            raise ParsingError("Unexpected response shape", provider=self.name)
        if not data.get("data"):
            return []

        results = []
        for item in data["data"]:
            try:
                result = self._parse_item(item)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "result_parse_failed",
                    provider=self.name,
                    paper_id=item.get("paperId") if isinstance(item, dict) else None,
                    error=str(e),
                )
                continue
            if result is not None:
                results.append(result)

        return results

    def _parse_item(self, item: dict) -> Optional[RawResult]:
        authors = [
            auth["name"].strip()
            for auth in item.get("authors") or []
            if auth.get("name") and auth["name"].strip()
        ]

        journal = item.get("venue") or None
        journal_info = item.get("journal")
        if not journal and isinstance(journal_info, dict):
            journal = journal_info.get("name") or None

        external_ids = item.get("externalIds") or {}
        citations = item.get("citationCount")

        return self._build_result(
            title=(item.get("title") or "").strip(),
            authors=authors,
            journal=journal,
            year=item.get("year"),
            citations=citations if isinstance(citations, int) else None,
            doi=external_ids.get("DOI"),
            url=item.get("url"),
            abstract=item.get("abstract"),
            relevance=0.6,
        )
