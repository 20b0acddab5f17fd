import httpx
from typing import Dict, Any, List, Optional
from loguru import logger

HOTMART_ORIGIN = "hotmart"
LIFECYCLE_STAGE = "customer"


class HubSpotError(Exception):
    """A HubSpot call failed or returned something unusable."""


def build_contact_properties(
    email: str,
    product: str,
    status: str,
    owner_id: Optional[str] = None
) -> Dict[str, str]:
    """
    Build the HubSpot property set for a Hotmart buyer.

    Lifecycle stage is "customer" for every status, refunds and
    chargebacks included.
    """
    properties = {
        "email": email,
        "origem_hotmart": HOTMART_ORIGIN,
        "produto_hotmart": product or "",
        "status_hotmart": status or "",
        "lifecyclestage": LIFECYCLE_STAGE
    }
    if owner_id:
        properties["hubspot_owner_id"] = str(owner_id)
    return properties


class HubSpotClient:
    """HubSpot CRM integration client."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.hubapi.com",
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

        if not self.token:
            logger.warning("No HubSpot token provided, CRM calls will be rejected")

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for HubSpot API requests."""
        return {
            "Authorization": f"Bearer {self.token or ''}",
            "Content-Type": "application/json"
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._get_headers(),
            transport=self._transport
        )

    async def list_owners(self) -> List[Dict[str, Any]]:
        """
        Read the full owner directory.

        Returns:
            Owner records (each with at least ``id`` and ``email``)

        Raises:
            HubSpotError: on transport failure, error status or bad payload
        """
        owners: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"limit": 100}

        try:
            async with self._client() as client:
                while True:
                    response = await client.get("/crm/v3/owners/", params=params)
                    response.raise_for_status()
                    data = response.json()
                    results = data.get("results") if isinstance(data, dict) else None
                    if not isinstance(results, list):
                        raise HubSpotError("Owner directory response has no results list")
                    owners.extend(o for o in results if isinstance(o, dict))

                    paging = data.get("paging") or {}
                    next_page = (paging.get("next") or {}) if isinstance(paging, dict) else None
                    if not isinstance(next_page, dict):
                        raise HubSpotError(f"Owner directory response has bad paging: {paging!r}")
                    after = next_page.get("after")
                    if not after:
                        break
                    params["after"] = after
        except httpx.HTTPStatusError as e:
            raise HubSpotError(f"Owner lookup failed with {e.response.status_code}: {e.response.text}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise HubSpotError(f"Owner lookup failed: {e}") from e

        logger.info(f"Fetched {len(owners)} HubSpot owners")
        return owners

    async def upsert_contact(
        self,
        email: str,
        product: str,
        status: str,
        owner_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create or update a contact keyed by email.

        Args:
            email: Buyer email (required)
            product: Product name, may be empty
            status: Canonical purchase status
            owner_id: HubSpot owner to assign, if resolved

        Returns:
            Contact record as returned by HubSpot

        Raises:
            ValueError: if email is empty
            HubSpotError: on transport failure, error status or bad payload
        """
        if not email:
            raise ValueError("Buyer email missing from payload")

        properties = build_contact_properties(email, product, status, owner_id)
        payload = {
            "inputs": [{
                "idProperty": "email",
                "id": email,
                "properties": properties
            }]
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    "/crm/v3/objects/contacts/batch/upsert",
                    json=payload
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise HubSpotError(f"Contact upsert failed with {e.response.status_code}: {e.response.text}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise HubSpotError(f"Contact upsert failed: {e}") from e

        results = data.get("results") if isinstance(data, dict) else None
        if not results or not isinstance(results[0], dict):
            raise HubSpotError(f"Contact upsert returned no contact: {data}")

        contact = results[0]
        logger.info(f"Upserted HubSpot contact {contact.get('id')} for {email}")
        return contact
