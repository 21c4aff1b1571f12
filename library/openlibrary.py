import logging
from typing import Optional

import httpx

from library.config import settings
from library.constants import (
    COVER_IMAGE_URL,
    EXTERNAL_SEARCH_DEFAULT_LIMIT,
    EXTERNAL_SEARCH_FIELDS,
    UNKNOWN_AUTHOR,
)
from library.exceptions import ExternalSearchUnavailableError
from library.schemas import ExternalBook, ExternalSearchResult

logger = logging.getLogger(__name__)


def _first(values):
    if isinstance(values, list) and values:
        return values[0]
    return None


def map_document(doc: dict) -> ExternalBook:
    cover_id = doc.get("cover_i")
    return ExternalBook(
        title=doc.get("title"),
        author=_first(doc.get("author_name")) or UNKNOWN_AUTHOR,
        isbn=_first(doc.get("isbn")),
        published_year=doc.get("first_publish_year"),
        publisher=_first(doc.get("publisher")),
        cover_image_url=COVER_IMAGE_URL.format(cover_id=cover_id) if cover_id else None,
        external_id=doc.get("key"),
    )


class OpenLibraryClient:
    """Search client for the OpenLibrary catalog. No retries, no partial results."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.openlibrary_base_url
        self.timeout = httpx.Timeout(
            timeout or settings.openlibrary_timeout,
            connect=connect_timeout or settings.openlibrary_connect_timeout,
        )
        self._transport = transport

    async def search(
        self, query: str, limit: int = EXTERNAL_SEARCH_DEFAULT_LIMIT
    ) -> ExternalSearchResult:
        params = {"q": query, "limit": limit, "fields": EXTERNAL_SEARCH_FIELDS}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get("/search.json", params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            logger.error(f"External book search failed: {e!r}")
            raise ExternalSearchUnavailableError()
        except ValueError as e:
            logger.error(f"External book search returned invalid JSON: {e}")
            raise ExternalSearchUnavailableError()

        if not isinstance(payload, dict) or not isinstance(payload.get("docs"), list):
            logger.error("External book search returned an unexpected payload")
            raise ExternalSearchUnavailableError()

        try:
            books = [
                map_document(doc) for doc in payload["docs"] if isinstance(doc, dict)
            ]
            return ExternalSearchResult(
                books=books, total=payload.get("numFound", len(books)), query=query
            )
        except ValueError as e:
            # pydantic's ValidationError is a ValueError
            logger.error(f"External book search returned malformed documents: {e}")
            raise ExternalSearchUnavailableError()


def get_openlibrary_client() -> OpenLibraryClient:
    return OpenLibraryClient()
