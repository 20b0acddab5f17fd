import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from tools.hubspot import HubSpotClient, HubSpotError

OWNER_CACHE_TTL = 3600


@dataclass(frozen=True)
class OwnerCacheEntry:
    email: str
    owner_id: Optional[str]
    resolved_at: float


class OwnerResolver:
    """Resolves the configured owner email to a HubSpot owner id.

    Keeps a single cached entry for an hour. Lookups are best-effort: any
    directory failure resolves to no owner.
    """

    def __init__(
        self,
        client: HubSpotClient,
        ttl: int = OWNER_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.ttl = ttl
        self._clock = clock
        self._entry: Optional[OwnerCacheEntry] = None

    @property
    def cached(self) -> Optional[OwnerCacheEntry]:
        return self._entry

    async def resolve(self, owner_email: Optional[str]) -> Optional[str]:
        if not owner_email:
            return None

        wanted = owner_email.strip().lower()
        entry = self._entry
        now = self._clock()
        if entry and entry.email == wanted and now - entry.resolved_at < self.ttl:
            return entry.owner_id

        try:
            owners = await self.client.list_owners()
        except HubSpotError as e:
            logger.error(f"Error fetching owners: {e}")
            return None
        except Exception as e:
            logger.exception(f"Unexpected error fetching owners: {e}")
            return None

        for owner in owners:
            if not isinstance(owner, dict):
                continue
            email = owner.get("email")
            if isinstance(email, str) and email.strip().lower() == wanted and owner.get("id"):
                owner_id = str(owner["id"])
                self._entry = OwnerCacheEntry(email=wanted, owner_id=owner_id, resolved_at=now)
                logger.info(f"Resolved HubSpot owner {owner_id} for {owner_email}")
                return owner_id

        logger.warning(f"No HubSpot owner found for {owner_email}")
        return None
