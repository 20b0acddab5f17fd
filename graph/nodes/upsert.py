from typing import Awaitable, Callable
from graph.state import PurchaseState, Outcome
from tools.hubspot import HubSpotClient
from loguru import logger


def make_upsert(client: HubSpotClient) -> Callable[[PurchaseState], Awaitable[PurchaseState]]:
    """Build the HubSpot upsert node.

    Failures are not caught here; the webhook handler decides how to
    answer the sender.
    """

    async def upsert(state: PurchaseState) -> PurchaseState:
        normalized = state["normalized"]
        state["contact"] = await client.upsert_contact(
            email=normalized["email"],
            product=normalized["product"],
            status=normalized["status"],
            owner_id=state.get("owner_id")
        )
        state["outcome"] = Outcome.OK
        logger.info(f"Event {state.get('event_id') or 'anonymous'} synced to contact {state['contact'].get('id')}")
        return state

    return upsert
