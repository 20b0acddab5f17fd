from typing import Callable
from graph.state import PurchaseState, Outcome
from tools.idempotency import Idem
from loguru import logger


def make_dedupe(idem: Idem) -> Callable[[PurchaseState], PurchaseState]:
    """Build the dedupe node around a shared idempotency guard."""

    def dedupe(state: PurchaseState) -> PurchaseState:
        """Stop repeated deliveries of the same event id."""
        event_id = state.get("event_id")
        if not event_id:
            # anonymous events are always processed
            return state

        if not idem.check_and_set(event_id):
            logger.warning(f"Duplicate event ignored: {event_id}")
            state["outcome"] = Outcome.DUPLICATE

        return state

    return dedupe
