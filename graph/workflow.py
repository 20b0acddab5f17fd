from typing import Optional
from langgraph.graph import StateGraph, START, END
from loguru import logger

from graph.state import PurchaseState, Outcome
from graph.nodes.capture import capture
from graph.nodes.dedupe import make_dedupe
from graph.nodes.assign_owner import make_assign_owner
from graph.nodes.upsert import make_upsert
from tools.hubspot import HubSpotClient
from tools.idempotency import Idem
from tools.owners import OwnerResolver


def build_workflow(
    idem: Idem,
    owners: OwnerResolver,
    hubspot: HubSpotClient,
    owner_email: Optional[str] = None
):
    """Build the purchase sync workflow.

    capture -> dedupe -> assign_owner -> upsert, stopping early when no
    email was found or the event is a duplicate.
    """
    workflow = StateGraph(PurchaseState)

    # Add nodes
    workflow.add_node("capture", capture)
    workflow.add_node("dedupe", make_dedupe(idem))
    workflow.add_node("assign_owner", make_assign_owner(owners, owner_email))
    workflow.add_node("upsert", make_upsert(hubspot))

    def after_capture(state: PurchaseState) -> str:
        if state.get("outcome") == Outcome.NO_EMAIL:
            return "end"
        return "dedupe"

    def after_dedupe(state: PurchaseState) -> str:
        if state.get("outcome") == Outcome.DUPLICATE:
            return "end"
        return "assign_owner"

    # Add edges
    workflow.add_edge(START, "capture")
    workflow.add_conditional_edges("capture", after_capture, {"dedupe": "dedupe", "end": END})
    workflow.add_conditional_edges("dedupe", after_dedupe, {"assign_owner": "assign_owner", "end": END})
    workflow.add_edge("assign_owner", "upsert")
    workflow.add_edge("upsert", END)

    logger.debug("Purchase sync workflow compiled")
    return workflow.compile()
