from typing import Awaitable, Callable, Optional
from graph.state import PurchaseState
from tools.owners import OwnerResolver
from loguru import logger


def make_assign_owner(
    resolver: OwnerResolver,
    owner_email: Optional[str]
) -> Callable[[PurchaseState], Awaitable[PurchaseState]]:
    """Build the owner assignment node for the configured owner email."""

    async def assign_owner(state: PurchaseState) -> PurchaseState:
        """Attach the HubSpot owner id, when one can be resolved."""
        state["owner_id"] = await resolver.resolve(owner_email)
        if owner_email and not state["owner_id"]:
            logger.info(f"Contact for event {state.get('event_id') or 'anonymous'} left unassigned")
        return state

    return assign_owner
