"""Read-only client for the public Quaver API."""

from __future__ import annotations

from typing import Any, Dict, List

import aiohttp
import yarl

from .config import API_URL


class CatalogClient:
    def __init__(self, http: aiohttp.ClientSession, api_url: str = API_URL):
        self.http = http
        self.api_url = yarl.URL(api_url)

    async def _get_json(self, url: yarl.URL) -> Dict[str, Any]:
        async with self.http.get(url) as resp:
            resp.raise_for_status()
            return await resp.json(content_type=None)

    async def ranked_mapset_ids(self) -> List[int]:
        """Ids of every ranked mapset, in the order the API lists them."""
        data = await self._get_json(self.api_url / "mapsets" / "ranked")
        return [int(mapset_id) for mapset_id in data.get("mapsets", [])]

    async def mapset(self, mapset_id: int) -> Dict[str, Any]:
        """Full mapset record, including its ``maps`` list."""
        data = await self._get_json(self.api_url / "mapsets" / str(mapset_id))
        mapset = data.get("mapset")
        if not isinstance(mapset, dict):
            raise ValueError(f"No mapset in API response for {mapset_id}")
        return mapset
