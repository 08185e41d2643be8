import re
from typing import Any, Dict, List, Optional

import structlog

from reference_discovery.models.reference import RawResult
from reference_discovery.models.search import SearchOptions
from reference_discovery.services.providers.base import ReferenceProvider
from reference_discovery.utils.exceptions import ParsingError

logger = structlog.get_logger()

_JATS_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")

# Date fields in order of preference
_DATE_FIELDS = ("published-print", "published-online", "issued", "created")


def strip_jats(text: Optional[str]) -> Optional[str]:
    """Remove JATS markup (<jats:p>, <jats:italic>, ...) from an abstract."""
    if not text:
        return None
    cleaned = _WHITESPACE.sub(" ", _JATS_TAG.sub(" ", text)).strip()
    return cleaned or None


def extract_year(work: Dict[str, Any]) -> Optional[int]:
    """First year found in the CrossRef date fields."""
    for field in _DATE_FIELDS:
        date_parts = (work.get(field) or {}).get("date-parts") or [[]]
        if date_parts and date_parts[0] and date_parts[0][0]:
            return int(date_parts[0][0])
    return None


class CrossRefProvider(ReferenceProvider):
    """Search for works using the CrossRef REST API

    CrossRef is free and keyless; sending a contact address (mailto) routes
    requests to the "polite" pool with better rate limits.
    """

    BASE_URL = "https://api.crossref.org/works"
    SELECT = (
        "DOI,title,author,container-title,published-print,published-online,"
        "issued,abstract,URL,is-referenced-by-count,subject"
    )
    base_confidence = 0.6

    def __init__(self, mailto: Optional[str] = None, timeout_seconds: float = 30.0):
        super().__init__(timeout_seconds)
        self.mailto = mailto

    @property
    def name(self) -> str:
        return "crossref"

    async def execute(self, query: str, options: SearchOptions) -> List[RawResult]:
        params = self._build_query_params(query, options)
        data = await self._fetch_json(self.BASE_URL, params=params)
        results = self._parse_response(data)[: options.max_results]

        logger.info(
            "papers_discovered",
            query=query,
            count=len(results),
            provider=self.name,
        )
        return results

    def _build_query_params(self, query: str, options: SearchOptions) -> dict:
        params: Dict[str, Any] = {
            "query": query,
            "rows": options.max_results,
            "select": self.SELECT,
        }

        filters = []
        if options.year_start:
            filters.append(f"from-pub-date:{options.year_start}")
        if options.year_end:
            filters.append(f"until-pub-date:{options.year_end}")
        if filters:
            params["filter"] = ",".join(filters)

        if options.sort_by == "date":
            params["sort"] = "published"
            params["order"] = "desc"

        if self.mailto:
            params["mailto"] = self.mailto

        return params

    def _parse_response(self, data: Any) -> List[RawResult]:
        if not isinstance(data, dict) or not isinstance(data.get("message"), dict):
            raise ParsingError("Unexpected response shape", provider=self.name)

        results = []
        for item in data["message"].get("items") or []:
            try:
                result = self._parse_item(item)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "result_parse_failed",
                    provider=self.name,
                    doi=item.get("DOI") if isinstance(item, dict) else None,
                    error=str(e),
                )
                continue
            if result is not None:
                results.append(result)

        return results

    def _parse_item(self, item: dict) -> Optional[RawResult]:
        titles = item.get("title") or []
        journals = item.get("container-title") or []

        authors = []
        for author in item.get("author") or []:
            name = " ".join(
                part for part in (author.get("given"), author.get("family")) if part
            )
            name = name or author.get("name") or ""
            if name.strip():
                authors.append(name.strip())

        citations = item.get("is-referenced-by-count")

        return self._build_result(
            title=(titles[0] if titles else "").strip(),
            authors=authors,
            journal=journals[0] if journals else None,
            year=extract_year(item),
            citations=citations if isinstance(citations, int) else None,
            doi=item.get("DOI"),
            url=item.get("URL"),
            abstract=strip_jats(item.get("abstract")),
            keywords=list(item.get("subject") or []),
            relevance=0.6,
        )
