import hmac
from typing import Any, Mapping, Optional

# Where Hotmart may put the shared secret, checked in this order
SECRET_HEADERS = ("x-hotmart-secret", "x-hotmart-signature", "x-hottok")
SECRET_QUERY_PARAMS = ("secret", "hottok")
SECRET_BODY_FIELDS = ("secret", "hottok")


def _first_present(source: Optional[Mapping[str, Any]], names) -> Optional[str]:
    if not source:
        return None
    for name in names:
        value = source.get(name)
        if value is None or isinstance(value, (dict, list)):
            continue
        value = str(value)
        if value:
            return value
    return None


def find_credential(
    headers: Optional[Mapping[str, Any]],
    query: Optional[Mapping[str, Any]],
    body: Optional[Mapping[str, Any]],
) -> Optional[str]:
    """Return the first non-empty credential across headers, query and body."""
    if not isinstance(body, Mapping):
        body = None
    return (
        _first_present(headers, SECRET_HEADERS)
        or _first_present(query, SECRET_QUERY_PARAMS)
        or _first_present(body, SECRET_BODY_FIELDS)
    )


def is_authorized(expected_secret: Optional[str], credential: Optional[str]) -> bool:
    """
    Decide whether a webhook call may be processed.

    With no secret configured every call passes (open mode). Otherwise the
    credential must be present and match exactly; a missing and a wrong
    credential are indistinguishable to the caller.
    """
    if not expected_secret:
        return True
    if not credential:
        return False
    return hmac.compare_digest(credential.encode("utf-8"), expected_secret.encode("utf-8"))
