from enum import Enum
from typing import TypedDict, Optional, List, Dict, Any


class Outcome(str, Enum):
    """Result kind of a webhook delivery, sent back as the response body."""
    OK = "ok"
    DUPLICATE = "duplicate"
    NO_EMAIL = "no-email"
    RECEIVED = "received"   # internal failure, acknowledged anyway


class NormalizedEvent(TypedDict):
    email: Optional[str]
    status: str                      # always canonical
    product: str
    event_id: Optional[str]


class PurchaseState(TypedDict, total=False):
    """State shape for the purchase sync workflow."""
    raw: Dict[str, Any]              # original webhook payload
    normalized: NormalizedEvent
    event_id: Optional[str]
    owner_id: Optional[str]          # HubSpot owner id
    contact: Dict[str, Any]          # HubSpot contact representation
    outcome: Outcome
    errors: List[str]
