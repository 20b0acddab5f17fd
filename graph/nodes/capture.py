from typing import Any, Callable, Dict, Optional, Sequence
from graph.state import PurchaseState, NormalizedEvent, Outcome
from loguru import logger

Accessor = Callable[[Dict[str, Any]], Any]


def path(*keys: str) -> Accessor:
    """Build an accessor that walks nested dicts, yielding None on any gap."""
    def get(payload: Dict[str, Any]) -> Any:
        node: Any = payload
        for key in keys:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node
    get.__name__ = ".".join(keys)
    return get


# Candidate paths per field, current Hotmart payload version first
EMAIL_PATHS = (
    path("data", "buyer", "email"),
    path("buyer", "email"),
    path("data", "buyer_email"),
    path("email"),
    path("checkout_data", "customer_email"),
    path("purchase", "buyer_email"),
)

STATUS_PATHS = (
    path("data", "purchase", "status"),
    path("status"),
    path("purchase_status"),
    path("data", "status"),
    path("event"),
    path("transaction", "status"),
)

PRODUCT_PATHS = (
    path("data", "product", "name"),
    path("product", "name"),
    path("data", "product_name"),
    path("purchase", "product", "name"),
    path("item", "name"),
    path("product_name"),
)

EVENT_ID_PATHS = (
    path("id"),
    path("event_id"),
    path("transaction", "id"),
    path("data", "purchase", "transaction"),
)

STATUS_ALIASES = {
    "approved": "approved",
    "purchase_approved": "approved",
    "refunded": "refunded",
    "refund": "refunded",
    "purchase_refunded": "refunded",
    "chargeback": "chargeback",
    "purchase_chargeback": "chargeback",
}

DEFAULT_STATUS = "pending"


def first_match(payload: Dict[str, Any], accessors: Sequence[Accessor]) -> Optional[str]:
    """Return the first non-empty scalar value found, as a stripped string."""
    for accessor in accessors:
        value = accessor(payload)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def extract_fields(payload: Any) -> Dict[str, Any]:
    """
    Pull email, raw status, product and event id out of a Hotmart payload.

    Never raises: missing email/event id come back as None, missing
    status/product as an empty string.
    """
    if not isinstance(payload, dict):
        payload = {}

    return {
        "email": first_match(payload, EMAIL_PATHS),
        "status": (first_match(payload, STATUS_PATHS) or "").lower(),
        "product": first_match(payload, PRODUCT_PATHS) or "",
        "event_id": first_match(payload, EVENT_ID_PATHS),
    }


def normalize_status(raw: Optional[str]) -> str:
    """Map a raw status/event string onto a canonical status."""
    value = (raw or "").strip().lower()
    if not value:
        return DEFAULT_STATUS
    return STATUS_ALIASES.get(value, value)


def capture(state: PurchaseState) -> PurchaseState:
    """Extract and normalize the purchase fields from the raw payload."""
    fields = extract_fields(state.get("raw", {}))

    normalized: NormalizedEvent = {
        "email": fields["email"],
        "status": normalize_status(fields["status"]),
        "product": fields["product"],
        "event_id": fields["event_id"],
    }
    state["normalized"] = normalized
    state["event_id"] = fields["event_id"]

    if not normalized["email"]:
        logger.warning(f"No buyer email in payload (event {fields['event_id'] or 'anonymous'})")
        state["outcome"] = Outcome.NO_EMAIL
        return state

    logger.info(
        f"Captured purchase event {fields['event_id'] or 'anonymous'}: "
        f"{normalized['email']} / {normalized['product'] or '-'} / {normalized['status']}"
    )
    return state
