import pytest
from unittest.mock import AsyncMock

from directory import (
    CreativeToniesUnavailable,
    TonieDirectory,
    normalize_creative_tonie,
    parse_tonie_key,
)
from errors import TargetNotFound, UpstreamApiFailed


def api_with(responses):
    """AsyncMock API client whose `get` answers from a path -> value/exception map."""
    api = AsyncMock()

    async def get(path, access_token):
        value = responses.get(path)
        if value is None:
            raise UpstreamApiFailed(f"HTTP 404: {path}", http_status=404, path=path)
        if isinstance(value, Exception):
            raise value
        return value

    api.get = AsyncMock(side_effect=get)
    return api


BEAR = {"id": "ct1", "name": "Bear", "imageUrl": "https://img/bear.png", "chapters": [{}, {}], "live": False}
FOX = {"id": "ct2", "name": "Fox", "chapters": []}


class TestParseTonieKey:
    def test_composite_key(self):
        assert parse_tonie_key("h1/ct1") == ("h1", "ct1")

    @pytest.mark.parametrize("key", ["", "h1", "h1/", "/ct1", "h1/ct1/extra"])
    def test_malformed_key(self, key):
        with pytest.raises(TargetNotFound) as exc_info:
            parse_tonie_key(key)
        assert exc_info.value.http_status == 404


def test_normalize_creative_tonie():
    tonie = normalize_creative_tonie(BEAR).model_dump(by_alias=True)
    assert tonie["id"] == "ct1"
    assert tonie["image"] == "https://img/bear.png"
    assert tonie["chaptersCount"] == 2
    assert tonie["_raw"] == BEAR


class TestFetchCreativeTonies:
    @pytest.mark.asyncio
    async def test_primary_endpoint(self):
        api = api_with({"/households/h1/creativetonies": [BEAR]})
        tonies = await TonieDirectory(api).fetch_creative_tonies("tok", "h1")
        assert tonies == [BEAR]
        assert api.get.await_count == 1

    @pytest.mark.asyncio
    async def test_fallback_endpoint(self):
        api = api_with({"/households/h1/creative-tonies": [FOX]})
        tonies = await TonieDirectory(api).fetch_creative_tonies("tok", "h1")
        assert tonies == [FOX]
        assert [c.args[0] for c in api.get.await_args_list] == [
            "/households/h1/creativetonies",
            "/households/h1/creative-tonies",
        ]

    @pytest.mark.asyncio
    async def test_both_endpoints_fail(self):
        api = api_with({})
        with pytest.raises(CreativeToniesUnavailable) as exc_info:
            await TonieDirectory(api).fetch_creative_tonies("tok", "h1")

        debug = exc_info.value.debug()
        assert debug["endpoint"] == "/households/h1/creativetonies"
        assert debug["fallbackEndpoint"] == "/households/h1/creative-tonies"


class TestListHouseholds:
    @pytest.mark.asyncio
    async def test_households_in_upstream_order(self):
        api = api_with({
            "/households": [
                {"id": "h1", "name": "Home", "ownerName": "Sam"},
                {"id": "h2", "name": "Grandparents"},
            ],
            "/households/h1/creativetonies": [BEAR],
            "/households/h2/creative-tonies": [FOX],
        })

        households = await TonieDirectory(api).list_households("tok")

        assert [h["id"] for h in households] == ["h1", "h2"]
        assert households[0]["ownerName"] == "Sam"
        assert [t["name"] for t in households[0]["creativeTonies"]] == ["Bear"]
        assert [t["name"] for t in households[1]["creativeTonies"]] == ["Fox"]

    @pytest.mark.asyncio
    async def test_tonie_failure_degrades_to_empty_list(self):
        api = api_with({
            "/households": [{"id": "h1", "name": "Home"}, {"id": "h2", "name": "Away"}],
            "/households/h2/creativetonies": [FOX],
        })

        households = await TonieDirectory(api).list_households("tok")

        assert households[0]["creativeTonies"] == []
        assert len(households[1]["creativeTonies"]) == 1

    @pytest.mark.asyncio
    async def test_household_listing_failure(self):
        api = api_with({"/households": UpstreamApiFailed("HTTP 401: expired", http_status=401, path="/households")})

        with pytest.raises(UpstreamApiFailed) as exc_info:
            await TonieDirectory(api).list_households("tok")

        assert exc_info.value.http_status == 401
        assert exc_info.value.to_response()["error"] == "Failed to fetch households"

    @pytest.mark.asyncio
    async def test_no_households(self):
        api = api_with({"/households": []})
        assert await TonieDirectory(api).list_households("tok") == []


class TestFindHousehold:
    @pytest.mark.asyncio
    async def test_found(self):
        api = api_with({"/households": [{"id": "h1", "name": "Home"}, {"id": "h2", "name": "Away"}]})
        household = await TonieDirectory(api).find_household("tok", "h2")
        assert household == {"id": "h2", "name": "Away"}

    @pytest.mark.asyncio
    async def test_not_found_lists_available(self):
        api = api_with({"/households": [{"id": "h1", "name": "Home", "ownerName": "Sam"}]})

        with pytest.raises(TargetNotFound) as exc_info:
            await TonieDirectory(api).find_household("tok", "hX")

        assert exc_info.value.http_status == 404
        assert exc_info.value.to_response() == {
            "error": "Household not found",
            "details": 'Household with ID "hX" not found',
            "availableHouseholds": [{"id": "h1", "name": "Home"}],
        }

    @pytest.mark.asyncio
    async def test_listing_failure(self):
        api = api_with({"/households": UpstreamApiFailed("HTTP 500: boom", http_status=500, path="/households")})

        with pytest.raises(UpstreamApiFailed) as exc_info:
            await TonieDirectory(api).find_household("tok", "h1")

        body = exc_info.value.to_response()
        assert body["error"] == "Failed to fetch households"
        assert body["path"] == "/households"


class TestFindCreativeTonie:
    @pytest.mark.asyncio
    async def test_found(self):
        api = api_with({"/households/h1/creativetonies": [BEAR, FOX]})
        tonie = await TonieDirectory(api).find_creative_tonie("tok", "h1", "ct2")
        assert tonie == FOX

    @pytest.mark.asyncio
    async def test_not_found_lists_available(self):
        api = api_with({"/households/h1/creativetonies": [BEAR, FOX]})

        with pytest.raises(TargetNotFound) as exc_info:
            await TonieDirectory(api).find_creative_tonie("tok", "h1", "missing")

        body = exc_info.value.to_response()
        assert body["error"] == "Creative-Tonie not found"
        assert body["availableCreativetonies"] == [
            {"id": "ct1", "name": "Bear", "chapters": 2},
            {"id": "ct2", "name": "Fox", "chapters": 0},
        ]

    @pytest.mark.asyncio
    async def test_every_endpoint_fails(self):
        api = api_with({})

        with pytest.raises(UpstreamApiFailed) as exc_info:
            await TonieDirectory(api).find_creative_tonie("tok", "h1", "ct1")

        body = exc_info.value.to_response()
        assert exc_info.value.http_status == 404
        assert body["error"] == "Failed to fetch Creative-Tonies"
        assert body["debug"]["householdId"] == "h1"
        assert body["debug"]["fallbackEndpoint"] == "/households/h1/creative-tonies"
