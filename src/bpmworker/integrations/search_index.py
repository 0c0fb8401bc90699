"""Search index (Elasticsearch REST) client."""

import logging
from typing import Any, Optional
from uuid import UUID

import httpx

from bpmworker.config import Settings, settings as default_settings
from bpmworker.errors import NotFoundError

logger = logging.getLogger(__name__)


def statistics_query(asset_ids: list[str]) -> dict[str, Any]:
    """Delete-by-query body matching any of the given asset ids."""
    return {
        "query": {
            "bool": {
                "should": [{"match": {"id.keyword": pid}} for pid in asset_ids],
                "minimum_should_match": 1,
            }
        }
    }


class SearchIndexClient:
    """Removes account data from the search index."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or default_settings
        if not self.config.search_base_url:
            raise ValueError("search_base_url is not configured")
        self._client = httpx.AsyncClient(
            base_url=self.config.search_base_url.rstrip("/"),
            timeout=self.config.remote_job_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def delete_asset_statistics(self, asset_ids: list[str]) -> None:
        """Delete statistics documents of the given assets from both views."""
        if not asset_ids:
            return
        body = statistics_query(asset_ids)
        for index in (
            self.config.search_assets_view_index,
            self.config.search_assets_view_aggregate_index,
        ):
            response = await self._client.post(f"/{index}/_delete_by_query", json=body)
            response.raise_for_status()
            deleted = response.json().get("deleted")
            logger.info(f"Deleted asset statistics. [index={index}, deleted={deleted}]")

    async def remove_profile(self, user_key: UUID) -> None:
        response = await self._client.delete(
            f"/{self.config.search_profiles_index}/_doc/{user_key}"
        )
        if response.status_code == 404:
            raise NotFoundError(f"profile/{user_key}")
        response.raise_for_status()
