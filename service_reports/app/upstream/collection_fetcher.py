"""
Collection fetcher for Reports Service.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.errors import UpstreamError
from shared.logging import get_logger


PAGE_SIZE = 100


class CollectionFetcher:
    """Client retrieving every published item of a CMS collection."""

    def __init__(
        self,
        api_base_url: str,
        collection_id: str,
        api_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = api_base_url.rstrip('/')
        self.collection_id = collection_id
        self.api_token = api_token
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("reports.upstream")

        if not api_token:
            self.logger.warning("No upstream API token configured; requests will be unauthenticated")

    @property
    def items_url(self) -> str:
        return f"{self.base_url}/collections/{self.collection_id}/items/live"

    async def fetch_all(self) -> List[Dict[str, Any]]:
        """Fetch the complete live collection.

        A page shorter than PAGE_SIZE ends the collection; a full page always
        triggers one more request.

        Raises:
            UpstreamError: if any page request fails
        """
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Accept": "application/json",
        }
        items: List[Dict[str, Any]] = []
        offset = 0

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                page = await self._fetch_page(client, headers, offset)
                items.extend(page)
                if len(page) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE

        self.logger.info("Fetched live collection", collection_id=self.collection_id, item_count=len(items))
        return items

    async def _fetch_page(self, client: httpx.AsyncClient, headers: Dict[str, str], offset: int) -> List[Dict[str, Any]]:
        params = {"limit": str(PAGE_SIZE), "offset": str(offset)}

        try:
            response = await client.get(self.items_url, params=params, headers=headers)
        except httpx.HTTPError as e:
            self.logger.error("Upstream request failed", url=self.items_url, offset=offset, error=str(e))
            raise UpstreamError(None, str(e))

        if not response.is_success:
            self.logger.error(
                "Upstream page request failed",
                url=self.items_url,
                offset=offset,
                status_code=response.status_code,
                response=response.text
            )
            raise UpstreamError(response.status_code, response.text)

        data = response.json()
        page = data.get("items") if isinstance(data, dict) else None
        if not isinstance(page, list):
            page = []

        self.logger.debug("Upstream page retrieved", offset=offset, count=len(page))
        return page
