import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from errors import TargetNotFound, UpstreamApiFailed
from models import CreativeTonie, Household
from tonie_client import TonieApiClient

logger = logging.getLogger(__name__)

# The upstream API has served this collection under both spellings.
CREATIVE_TONIES_ENDPOINTS = (
    "/households/{household_id}/creativetonies",
    "/households/{household_id}/creative-tonies",
)
CHAPTERS_ENDPOINT = "/households/{household_id}/creativetonies/{creative_tonie_id}/chapters"


class CreativeToniesUnavailable(Exception):
    """Every candidate endpoint for a household's creative tonies failed."""

    def __init__(self, household_id: str, failures: List[Tuple[str, UpstreamApiFailed]]):
        self.household_id = household_id
        self.failures = failures
        super().__init__(f"No creative-tonies endpoint succeeded for household {household_id}")

    @property
    def first_error(self) -> UpstreamApiFailed:
        return self.failures[0][1]

    def debug(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "householdId": self.household_id,
            "endpoint": self.failures[0][0],
        }
        if len(self.failures) > 1:
            info["fallbackEndpoint"] = self.failures[-1][0]
            info["fallbackError"] = self.failures[-1][1].details
        return info


def normalize_creative_tonie(raw: Dict[str, Any]) -> CreativeTonie:
    chapters = raw.get("chapters") or []
    return CreativeTonie(
        id=str(raw.get("id")),
        name=raw.get("name") or raw.get("title"),
        image=raw.get("image") or raw.get("imageUrl"),
        live=raw.get("live"),
        private=raw.get("private"),
        noCloud=raw.get("noCloud"),
        chaptersCount=len(chapters) if isinstance(chapters, list) else 0,
        totalLength=raw.get("totalLength"),
        lastContent=raw.get("lastContent"),
        _raw=raw,
    )


def parse_tonie_key(tonie_id: str) -> Tuple[str, str]:
    """Split a composite `householdId/creativeTonieId` key."""
    parts = (tonie_id or "").split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise TargetNotFound(
            "Creative-Tonie not found",
            f'Tonie id "{tonie_id}" must look like "<householdId>/<creativeTonieId>"',
        )
    return parts[0], parts[1]


class TonieDirectory:
    def __init__(self, api_client: TonieApiClient):
        self.api = api_client

    async def fetch_creative_tonies(self, access_token: str, household_id: str) -> List[Dict[str, Any]]:
        """Try each endpoint spelling in order; raise if none answers."""
        failures: List[Tuple[str, UpstreamApiFailed]] = []
        for template in CREATIVE_TONIES_ENDPOINTS:
            endpoint = template.format(household_id=household_id)
            try:
                data = await self.api.get(endpoint, access_token)
            except UpstreamApiFailed as e:
                logger.info(f"Creative-Tonies endpoint {endpoint} failed: {e.details}")
                failures.append((endpoint, e))
                continue
            tonies = data if isinstance(data, list) else []
            logger.info(f"Found {len(tonies)} Creative-Tonies via {endpoint}")
            return tonies
        raise CreativeToniesUnavailable(household_id, failures)

    async def _household_with_tonies(self, access_token: str, household: Dict[str, Any]) -> Household:
        household_id = str(household.get("id"))
        try:
            raw_tonies = await self.fetch_creative_tonies(access_token, household_id)
        except CreativeToniesUnavailable as e:
            logger.warning(
                f"No Creative-Tonies found for household {household_id}. Error: {e.first_error.details}"
            )
            raw_tonies = []

        fields = {k: v for k, v in household.items() if k != "creativeTonies"}
        fields["id"] = household_id
        return Household(
            **fields,
            creativeTonies=[normalize_creative_tonie(t) for t in raw_tonies],
        )

    async def fetch_households(self, access_token: str) -> List[Dict[str, Any]]:
        try:
            households = await self.api.get("/households", access_token)
        except UpstreamApiFailed as e:
            raise e.with_context("Failed to fetch households")
        return households if isinstance(households, list) else []

    async def find_household(self, access_token: str, household_id: str) -> Dict[str, Any]:
        """
        Resolve a household the service account can see.

        Raises:
            UpstreamApiFailed: The household listing failed
            TargetNotFound: The id is not in the listing
        """
        households = await self.fetch_households(access_token)
        target = next((h for h in households if str(h.get("id")) == household_id), None)
        if target is None:
            available = [{"id": h.get("id"), "name": h.get("name")} for h in households]
            logger.warning(
                f"Household {household_id} not found; available: {[a['id'] for a in available]}"
            )
            raise TargetNotFound(
                "Household not found",
                f'Household with ID "{household_id}" not found',
                extra={"availableHouseholds": available},
            )

        logger.info(f"Found household: {target.get('name')}")
        return target

    async def list_households(self, access_token: str) -> List[Dict[str, Any]]:
        """
        List every household with its creative tonies.

        Raises:
            UpstreamApiFailed: The household listing itself failed
        """
        households = await self.fetch_households(access_token)
        results = await asyncio.gather(
            *(self._household_with_tonies(access_token, h) for h in households)
        )
        return [h.model_dump(by_alias=True) for h in results]

    async def find_creative_tonie(
        self,
        access_token: str,
        household_id: str,
        creative_tonie_id: str,
    ) -> Dict[str, Any]:
        """
        Resolve a creative tonie within a household.

        Raises:
            UpstreamApiFailed: No creative-tonies endpoint answered
            TargetNotFound: The id is not in the household's listing
        """
        try:
            tonies = await self.fetch_creative_tonies(access_token, household_id)
        except CreativeToniesUnavailable as e:
            raise e.first_error.with_context("Failed to fetch Creative-Tonies", debug=e.debug())

        target: Optional[Dict[str, Any]] = next(
            (t for t in tonies if str(t.get("id")) == creative_tonie_id), None
        )
        if target is None:
            available = [
                {
                    "id": t.get("id"),
                    "name": t.get("name"),
                    "chapters": len(t.get("chapters") or []),
                }
                for t in tonies
            ]
            logger.warning(
                f"Creative-Tonie {creative_tonie_id} not found in household {household_id}; "
                f"available: {[a['id'] for a in available]}"
            )
            raise TargetNotFound(
                "Creative-Tonie not found",
                f'Creative-Tonie with ID "{creative_tonie_id}" not found in household "{household_id}"',
                extra={"availableCreativetonies": available},
            )

        logger.info(f"Found Creative-Tonie: {target.get('name')} (ID: {target.get('id')})")
        return target
