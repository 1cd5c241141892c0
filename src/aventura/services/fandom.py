"""Fandom wiki lookups over the MediaWiki ``api.php`` endpoint.

The lorebook agent uses these to pull canon material from established
fictional universes. Every call is a plain GET against
``https://{wiki}.fandom.com/api.php``; HTML fragments are flattened to text
with BeautifulSoup before they reach the model.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable

import httpx
from bs4 import BeautifulSoup

from .fandom_cache import FandomCache

__all__ = [
    "FandomError",
    "KnowledgeLookup",
    "SearchResult",
    "Section",
    "ArticleInfo",
    "SectionContent",
    "FandomService",
    "DEFAULT_BASE_URL_TEMPLATE",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL_TEMPLATE = "https://{wiki}.fandom.com/api.php"
DEFAULT_USER_AGENT = "aventura/0.1 (lorebook assistant)"
MAX_SEARCH_LIMIT = 50

_WIKI_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_NOISE_SELECTORS = (
    "script",
    "style",
    ".mw-editsection",
    "sup.reference",
    ".reference",
    ".navbox",
    ".toc",
    ".mw-empty-elt",
    "figure",
    ".wikia-gallery",
)
_HEADINGS = ("h1", "h2", "h3", "h4", "h5", "h6")


class FandomError(RuntimeError):
    """Raised when a wiki request fails or the API reports an error."""


# -----------------------------------------------------------------------------
# Result types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SearchResult:
    title: str
    snippet: str = ""
    size: int = 0
    wordcount: int = 0


@dataclass(slots=True, frozen=True)
class Section:
    index: str
    title: str
    level: int = 2


@dataclass(slots=True, frozen=True)
class ArticleInfo:
    title: str
    page_id: int | None = None
    categories: tuple[str, ...] = ()
    sections: tuple[Section, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class SectionContent:
    title: str
    section_title: str
    section_index: str
    content: str


@runtime_checkable
class KnowledgeLookup(Protocol):
    """External knowledge source the lorebook agent can search and read."""

    async def search(self, wiki: str, query: str, limit: int = 10) -> list[SearchResult]: ...

    async def get_article_info(self, wiki: str, title: str) -> ArticleInfo: ...

    async def get_section(self, wiki: str, title: str, section_index: str) -> SectionContent: ...


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------


class FandomService:
    """Async client for Fandom's MediaWiki API with an optional shared cache."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        cache: FandomCache | None = None,
        base_url_template: str = DEFAULT_BASE_URL_TEMPLATE,
        request_timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        max_content_chars: int = 8000,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._cache = cache
        self._base_url_template = base_url_template
        self._timeout = request_timeout
        self._user_agent = user_agent
        self._max_content_chars = max(200, int(max_content_chars))

    # ------------------------------------------------------------------
    # KnowledgeLookup
    # ------------------------------------------------------------------

    async def search(self, wiki: str, query: str, limit: int = 10) -> list[SearchResult]:
        wiki = self._normalize_wiki(wiki)
        limit = max(1, min(int(limit), MAX_SEARCH_LIMIT))
        key = FandomCache.make_key(wiki, "search", query, limit)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        payload = await self._request(
            wiki,
            {
                "action": "query",
                "list": "search",
                "srsearch": query,
                "srlimit": str(limit),
            },
        )
        hits = (payload.get("query") or {}).get("search") or []
        results = [
            SearchResult(
                title=str(hit.get("title", "")),
                snippet=_html_to_text(hit.get("snippet") or ""),
                size=int(hit.get("size") or 0),
                wordcount=int(hit.get("wordcount") or 0),
            )
            for hit in hits
        ]
        self._cache_store(key, results)
        return results

    async def get_article_info(self, wiki: str, title: str) -> ArticleInfo:
        wiki = self._normalize_wiki(wiki)
        key = FandomCache.make_key(wiki, "info", title)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        payload = await self._request(
            wiki,
            {
                "action": "parse",
                "page": title,
                "prop": "sections|categories",
                "redirects": "1",
            },
        )
        parsed = payload.get("parse") or {}
        categories = tuple(
            str(item.get("category", "")).replace("_", " ")
            for item in parsed.get("categories") or []
            if not item.get("hidden")
        )
        sections = tuple(
            Section(
                index=str(item.get("index", "")),
                title=_html_to_text(str(item.get("line", ""))),
                level=int(item.get("level") or 2),
            )
            for item in parsed.get("sections") or []
        )
        info = ArticleInfo(
            title=str(parsed.get("title") or title),
            page_id=parsed.get("pageid"),
            categories=categories,
            sections=sections,
        )
        self._cache_store(key, info)
        return info

    async def get_section(self, wiki: str, title: str, section_index: str) -> SectionContent:
        wiki = self._normalize_wiki(wiki)
        section_index = str(section_index).strip()
        if not section_index.isdigit():
            raise FandomError(f"Invalid section index {section_index!r}; expected a number such as \"0\"")
        key = FandomCache.make_key(wiki, "section", title, section_index)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        payload = await self._request(
            wiki,
            {
                "action": "parse",
                "page": title,
                "section": section_index,
                "prop": "text",
                "disabletoc": "1",
                "redirects": "1",
            },
        )
        parsed = payload.get("parse") or {}
        html = parsed.get("text") or ""
        if isinstance(html, Mapping):
            html = html.get("*", "")
        heading, content = self._extract_section(str(html), has_heading=section_index != "0")
        if section_index == "0":
            heading = "Introduction"
        if len(content) > self._max_content_chars:
            content = content[: self._max_content_chars].rstrip() + "\n...[truncated]"
        result = SectionContent(
            title=str(parsed.get("title") or title),
            section_title=heading or f"Section {section_index}",
            section_index=section_index,
            content=content,
        )
        self._cache_store(key, result)
        return result

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _normalize_wiki(self, wiki: str) -> str:
        candidate = str(wiki or "").strip().lower()
        candidate = re.sub(r"^https?://", "", candidate)
        candidate = candidate.split("/", 1)[0]
        if candidate.endswith(".fandom.com"):
            candidate = candidate[: -len(".fandom.com")]
        if not _WIKI_RE.match(candidate):
            raise FandomError(f"Invalid wiki name: {wiki!r}")
        return candidate

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def _request(self, wiki: str, params: Mapping[str, str]) -> dict[str, Any]:
        url = self._base_url_template.format(wiki=wiki)
        query = {**params, "format": "json", "formatversion": "2"}
        LOGGER.debug("Fandom request %s %s", url, query.get("action"))
        try:
            response = await self._get_client().get(url, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise FandomError(f"Wiki '{wiki}' not found") from exc
            raise FandomError(f"Fandom API request failed with status {status}") from exc
        except httpx.HTTPError as exc:
            raise FandomError(f"Fandom API request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise FandomError("Fandom API returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise FandomError("Fandom API returned an unexpected payload")
        error = payload.get("error")
        if error:
            info = error.get("info") if isinstance(error, Mapping) else str(error)
            raise FandomError(str(info or "Fandom API error"))
        return payload

    def _extract_section(self, html: str, *, has_heading: bool = True) -> tuple[str, str]:
        soup = BeautifulSoup(html, "html.parser")
        for selector in _NOISE_SELECTORS:
            for tag in soup.select(selector):
                tag.decompose()
        heading = ""
        first_heading = soup.find(_HEADINGS) if has_heading else None
        if first_heading is not None:
            heading = first_heading.get_text(" ", strip=True)
            container = first_heading.parent
            if container is not None and "mw-heading" in (container.get("class") or []):
                container.decompose()
            else:
                first_heading.decompose()
        root = soup.select_one(".mw-parser-output") or soup
        return heading, root.get_text(separator="\n", strip=True)

    def _cache_get(self, key: tuple[Any, ...]) -> Any | None:
        if self._cache is None:
            return None
        return self._cache.get(key)

    def _cache_store(self, key: tuple[Any, ...], value: Any) -> None:
        if self._cache is not None:
            self._cache.store(key, value)


def _html_to_text(fragment: str) -> str:
    if "<" not in fragment:
        return fragment
    text = BeautifulSoup(fragment, "html.parser").get_text()
    return " ".join(text.split())
