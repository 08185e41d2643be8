"""Google Scholar HTML search provider.

Google Scholar has no public API, so results are scraped from the HTML
result page with BeautifulSoup. The markup changes without notice, which
is why parsing is layered:

1. Structural pass over `div.gs_r` result blocks (title, author line,
   snippet, "Cited by" link, DOI anywhere in the block)
2. Heuristic pass over plain links when no block is recognised or most
   blocks fail, accepted at low confidence
3. Error page and "no results" detection on pages without result
   blocks, outside the search form
"""

import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import parse_qs, urljoin, urlparse

import structlog
from bs4 import BeautifulSoup
from bs4.element import Tag

from reference_discovery.models.reference import RawResult
from reference_discovery.models.search import SearchOptions
from reference_discovery.services.providers.base import ReferenceProvider
from reference_discovery.utils.exceptions import BlockedError, ParsingError
from reference_discovery.utils.text import is_valid_doi, normalize_doi

logger = structlog.get_logger()

BLOCKED_PHRASES = (
    "captcha",
    "unusual traffic",
    "automated queries",
    "not a robot",
    "access denied",
)

NO_RESULTS_PATTERNS = (
    re.compile(r"did not match any articles"),
    re.compile(r"no results found"),
    re.compile(r"your search.*did not match"),
    re.compile(r"no articles found"),
)

NAVIGATION_TEXT = frozenset(
    ["home", "search", "about", "help", "settings", "login", "sign in"]
)
TITLE_INDICATORS = (
    "study",
    "analysis",
    "research",
    "investigation",
    "approach",
    "method",
    "theory",
    "model",
)

MIN_BODY_LENGTH = 100
MAX_AUTHORS = 10
FALLBACK_LIMIT = 5
# Share of result blocks allowed to fail before the page counts as unparseable
MAX_FAILED_SHARE = 0.8

_YEAR = re.compile(r"\b(19|20)\d{2}\b")
_CITED_BY = re.compile(r"Cited by\s+(\d+)", re.IGNORECASE)
_TITLE_TAG = re.compile(r"^\s*(\[[A-Z]+\]\s*)+")
_DOI_PATTERNS = (
    re.compile(r"(?:dx\.)?doi\.org/(10\.\d+/[^\s<>\"'&?#]+)", re.IGNORECASE),
    re.compile(r"\bdoi:\s*(10\.\d+/[^\s<>\"'&?#]+)", re.IGNORECASE),
    re.compile(r"\b(10\.\d{4,}/[^\s<>\"'&?#]+)"),
)
_WHITESPACE = re.compile(r"\s+")

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
}


def _clean(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.replace("\xa0", " ")).strip()


_NON_NOTICE_TAGS = frozenset(["head", "title", "form", "script", "style"])


def _notice_text(soup: BeautifulSoup) -> str:
    """Lowercased visible text, leaving out the head and the search form.

    The query is echoed in both, so block and no-results phrases are only
    looked for in the rest of the page.
    """
    parts = [
        text
        for text in soup.find_all(string=True)
        if not any(parent.name in _NON_NOTICE_TAGS for parent in text.parents)
    ]
    return _clean(" ".join(parts)).lower()


def looks_like_title(text: str) -> bool:
    """Heuristic used by the fallback pass to skip navigation links."""
    if len(text) < 10 or len(text) > 200:
        return False
    lower = text.lower()
    if lower in NAVIGATION_TEXT:
        return False
    if any(word in lower for word in TITLE_INDICATORS):
        return True
    return 3 <= len(text.split()) <= 20


class ScholarScrapeProvider(ReferenceProvider):
    """Search Google Scholar by scraping its HTML result page"""

    BASE_URL = "https://scholar.google.com/scholar"
    base_confidence = 0.4

    def __init__(
        self, timeout_seconds: float = 30.0, current_year: Optional[int] = None
    ):
        super().__init__(timeout_seconds)
        self._current_year = current_year

    @property
    def name(self) -> str:
        return "scholar"

    @property
    def current_year(self) -> int:
        return self._current_year or datetime.now().year

    async def execute(self, query: str, options: SearchOptions) -> List[RawResult]:
        params = self._build_query_params(query, options)
        html = await self._fetch(self.BASE_URL, params=params, headers=REQUEST_HEADERS)
        results = self.parse_results(html)[: options.max_results]

        logger.info(
            "papers_discovered",
            query=query,
            count=len(results),
            provider=self.name,
        )
        return results

    def _build_query_params(self, query: str, options: SearchOptions) -> dict:
        params = {
            "q": query,
            "hl": options.language,
            "num": min(options.max_results, 20),
        }
        if options.year_start or options.year_end:
            params["as_ylo"] = options.year_start or 1900
            params["as_yhi"] = options.year_end or self.current_year
        if options.sort_by == "date":
            params["scisbd"] = 1
        if not options.include_patents:
            params["as_vis"] = 1
        return params

    def parse_results(self, html: str) -> List[RawResult]:
        """Parse a Scholar result page into RawResults.

        Raises:
            ParsingError: Empty or truncated body, or most blocks unparseable
                with nothing recovered by the heuristic pass
            BlockedError: Page is a CAPTCHA or automated traffic notice
        """
        if not html or len(html.strip()) < MIN_BODY_LENGTH:
            raise ParsingError(
                "Received empty or invalid response", provider=self.name
            )

        soup = BeautifulSoup(html, "html.parser")
        if not soup.select_one("div.gs_r"):
            notice = _notice_text(soup)
            if any(pattern.search(notice) for pattern in NO_RESULTS_PATTERNS):
                logger.info("scholar_no_results", provider=self.name)
                return []
            if any(phrase in notice for phrase in BLOCKED_PHRASES):
                raise BlockedError(
                    "Google Scholar returned an automated traffic page",
                    provider=self.name,
                )

        blocks = [
            block
            for block in soup.select("div.gs_r")
            if block.select_one("h3.gs_rt") or block.select_one("div.gs_a")
        ]

        if not blocks:
            logger.warning("scholar_no_result_blocks", provider=self.name)
            return self._parse_fallback(soup)

        results: List[RawResult] = []
        failed = 0
        for block in blocks:
            try:
                result = self._parse_block(block)
            except ValueError as e:
                failed += 1
                logger.debug("scholar_block_parse_failed", error=str(e))
                continue
            if result is not None:
                results.append(result)

        if failed > len(blocks) * MAX_FAILED_SHARE:
            logger.warning(
                "scholar_blocks_unparseable",
                provider=self.name,
                failed=failed,
                total=len(blocks),
            )
            seen = {result.title.lower() for result in results}
            recovered = [
                result
                for result in self._parse_fallback(soup)
                if result.title.lower() not in seen
            ]
            if not recovered:
                raise ParsingError(
                    "Failed to parse majority of search results, "
                    "format may have changed",
                    provider=self.name,
                )
            return results + recovered

        logger.debug(
            "scholar_blocks_parsed",
            parsed=len(blocks) - failed,
            total=len(blocks),
        )
        return results

    def _parse_block(self, block: Tag) -> Optional[RawResult]:
        heading = block.select_one("h3.gs_rt")
        title = _TITLE_TAG.sub("", _clean(heading.get_text(" "))) if heading else ""
        if not title:
            raise ValueError("result block has no title")

        meta_tag = block.select_one("div.gs_a")
        meta = _clean(meta_tag.get_text(" ")) if meta_tag else ""
        link = heading.find("a", href=True) if heading else None
        snippet = block.select_one("div.gs_rs")
        abstract = self._extract_abstract(snippet.get_text(" ") if snippet else None)

        return self._build_result(
            title=title,
            authors=self._extract_authors(meta),
            journal=self._extract_journal(meta),
            year=self._extract_year(meta),
            citations=self._extract_citations(block),
            doi=self._extract_doi(str(block)),
            url=self._extract_url(link["href"]) if link else None,
            abstract=abstract,
            relevance=self._relevance(title, abstract),
        )

    def _parse_fallback(self, soup: BeautifulSoup) -> List[RawResult]:
        results = []
        for anchor in soup.find_all("a", href=True):
            text = _clean(anchor.get_text(" "))
            if len(text) <= 10 or not looks_like_title(text):
                continue
            results.append(
                RawResult(
                    provider=self.name,
                    title=text,
                    authors=["Unknown Author"],
                    url=self._extract_url(anchor["href"]),
                    confidence=0.2,
                    relevance=0.3,
                )
            )
            if len(results) >= FALLBACK_LIMIT:
                break

        if results:
            logger.warning(
                "scholar_fallback_parse", provider=self.name, count=len(results)
            )
        return results

    @staticmethod
    def _meta_parts(meta: str) -> List[str]:
        # "A Smith, B Jones - Nature, 2020 - nature.com"
        return [part.strip() for part in re.split(r"\s+[-‐-―]\s+", meta)]

    def _extract_authors(self, meta: str) -> List[str]:
        if not meta:
            return []
        names = re.split(r"[,;]", self._meta_parts(meta)[0])
        authors = []
        for name in names:
            name = name.strip(" ….").strip()
            if len(name) < 2 or len(name) > 100 or not re.search(r"[A-Za-z]", name):
                continue
            if _YEAR.fullmatch(name):
                continue
            authors.append(name)
            if len(authors) >= MAX_AUTHORS:
                break
        return authors

    def _extract_journal(self, meta: str) -> Optional[str]:
        parts = self._meta_parts(meta)
        if len(parts) < 3:
            return None
        journal = re.sub(r",?\s*\b(19|20)\d{2}\b.*$", "", parts[1]).strip(" ,…")
        if len(journal) < 2 or _YEAR.fullmatch(journal):
            return None
        return journal

    def _extract_year(self, meta: str) -> Optional[int]:
        for match in _YEAR.finditer(meta):
            year = int(match.group(0))
            if 1900 <= year <= self.current_year + 1:
                return year
        return None

    @staticmethod
    def _extract_citations(block: Tag) -> Optional[int]:
        match = _CITED_BY.search(block.get_text(" "))
        return int(match.group(1)) if match else None

    @staticmethod
    def _extract_doi(markup: str) -> Optional[str]:
        for pattern in _DOI_PATTERNS:
            for match in pattern.finditer(markup):
                doi = normalize_doi(match.group(1).rstrip(".,;)]"))
                if is_valid_doi(doi):
                    return doi
        return None

    def _extract_url(self, href: str) -> Optional[str]:
        if not href:
            return None
        if "/scholar_url" in href:
            target = parse_qs(urlparse(href).query).get("url")
            if target:
                return target[0]
        if href.startswith("/"):
            return urljoin(self.BASE_URL, href)
        if href.startswith("http"):
            return href
        return None

    @staticmethod
    def _extract_abstract(text: Optional[str]) -> Optional[str]:
        abstract = _clean(text)
        if len(abstract) < 10 or len(abstract.split()) < 3:
            return None
        if re.match(r"^(pdf|html|full text|download|view|access)$", abstract, re.I):
            return None
        return abstract

    @staticmethod
    def _relevance(title: str, abstract: Optional[str]) -> float:
        score = 0.5
        if len(title) > 20:
            score += 0.1
        if abstract and len(abstract) > 100:
            score += 0.2
        return min(score, 1.0)
