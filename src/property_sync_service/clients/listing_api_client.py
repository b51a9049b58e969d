"""
Client for the third-party listing feed.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from property_sync_service.config import settings
from property_sync_service.exceptions import SourceApiError
from property_sync_service.schemas.listing_payload import ApiFilters

logger = logging.getLogger(__name__)

LIST_KEYS = ("data", "inmuebles", "items", "results")


def extract_property_data(data: Any) -> List[Dict[str, Any]]:
    """
    Normalize every response shape the feed is known to produce to a list.

    Accepts a bare array, an object holding the array under one of
    ``data``, ``inmuebles``, ``items`` or ``results``, or a single listing
    object carrying ``ref``. Anything else yields an empty list.
    """
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = next(
            (data[key] for key in LIST_KEYS if isinstance(data.get(key), list)),
            None,
        )
        if items is None:
            items = [data] if data.get("ref") is not None else []
    else:
        items = []

    listings = [item for item in items if isinstance(item, dict)]
    if len(listings) != len(items):
        logger.warning(f"Ignored {len(items) - len(listings)} non-object listing(s)")
    return listings


class ListingApiClient:
    """
    Fetches the listing feed. Handles rate limiting, error handling and
    response parsing.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 1,
    ):
        """
        Initialize the listing API client.

        Args:
            http_client: Shared async HTTP client
            api_url: Feed endpoint, defaults to the value in settings
            timeout: Request timeout in seconds, defaults to the value in settings
            max_retries: Retries after a 429 response
        """
        self.http_client = http_client
        self.api_url = api_url or settings.SOURCE_API_URL
        self.timeout = timeout or settings.SOURCE_API_TIMEOUT_SECONDS
        self.max_retries = max_retries

    async def _request(self, filters: Optional[ApiFilters]) -> httpx.Response:
        retries = 0
        while True:
            if filters is not None and not filters.is_empty():
                body = {"filtros": filters.to_filtros()}
                logger.info(f"Requesting listings with filters {body['filtros']}")
                response = await self.http_client.post(
                    self.api_url, json=body, timeout=self.timeout
                )
            else:
                logger.info("Requesting all listings")
                response = await self.http_client.get(self.api_url, timeout=self.timeout)

            if response.status_code == 429 and retries < self.max_retries:
                retries += 1
                retry_after = response.headers.get("Retry-After", "")
                wait_time = min(int(retry_after), 10) if retry_after.isdigit() else 2**retries
                logger.warning(
                    f"Rate limit hit, waiting {wait_time}s before retry "
                    f"{retries}/{self.max_retries}..."
                )
                await asyncio.sleep(wait_time)
                continue
            return response

    async def fetch_listings(self, filters: Optional[ApiFilters] = None) -> List[Dict[str, Any]]:
        """
        Fetch listings from the feed.

        Raises:
            SourceApiError: On transport errors, timeouts, error statuses and
                bodies that are not JSON
        """
        try:
            response = await self._request(filters)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Listing API timed out after {self.timeout}s")
            raise SourceApiError(f"Listing API timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Listing API returned {e.response.status_code}")
            raise SourceApiError(
                f"Listing API returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error when calling listing API: {e}")
            raise SourceApiError(f"Listing API unavailable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise SourceApiError("Listing API returned a body that is not JSON") from e

        listings = extract_property_data(data)
        logger.info(f"Received {len(listings)} listing(s) from the API")
        return listings
