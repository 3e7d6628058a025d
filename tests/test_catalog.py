import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from quaver_mirror.catalog import CatalogClient


def catalog_app():
    async def ranked(request):
        return web.json_response({"status": 200, "mapsets": [30, 10, 20]})

    async def mapset(request):
        mapset_id = int(request.match_info["id"])
        if mapset_id == 404:
            return web.json_response({"status": 404, "error": "Mapset not found"}, status=404)
        if mapset_id == 500:
            return web.json_response({"status": 200})
        return web.json_response({
            "status": 200,
            "mapset": {"id": mapset_id, "artist": "Camellia", "maps": [{"id": 1, "mapset_id": mapset_id, "md5": "a" * 32}]},
        })

    app = web.Application()
    app.router.add_get("/v1/mapsets/ranked", ranked)
    app.router.add_get("/v1/mapsets/{id}", mapset)
    return app


def run_catalog(scenario):
    async def main():
        async with TestServer(catalog_app()) as server, aiohttp.ClientSession() as http:
            return await scenario(CatalogClient(http, str(server.make_url("/v1"))))

    return asyncio.run(main())


def test_ranked_ids_keep_api_order():
    async def scenario(catalog):
        return await catalog.ranked_mapset_ids()

    assert run_catalog(scenario) == [30, 10, 20]


def test_mapset_detail_includes_maps():
    async def scenario(catalog):
        return await catalog.mapset(10)

    mapset = run_catalog(scenario)
    assert mapset["id"] == 10
    assert mapset["maps"][0]["mapset_id"] == 10


def test_missing_mapset_raises_http_error():
    async def scenario(catalog):
        return await catalog.mapset(404)

    with pytest.raises(aiohttp.ClientResponseError):
        run_catalog(scenario)


def test_response_without_mapset_raises_value_error():
    async def scenario(catalog):
        return await catalog.mapset(500)

    with pytest.raises(ValueError):
        run_catalog(scenario)
