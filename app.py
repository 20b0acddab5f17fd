import json
import os
import time
from typing import Dict, Any, List, Optional, Tuple
from urllib.parse import parse_qsl

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from loguru import logger
from dotenv import load_dotenv
from fastapi.concurrency import run_in_threadpool

# Import our modules
from graph.state import Outcome
from graph.nodes.capture import extract_fields, normalize_status
from graph.workflow import build_workflow
from tools.auth import find_credential, is_authorized
from tools.config import Settings
from tools.hubspot import HubSpotClient
from tools.idempotency import Idem
from tools.owners import OwnerResolver
from tools.slack import SlackNotifier

# Load environment variables
load_dotenv()

# Configure logging
logger.add(
    os.getenv("LOG_FILE", "logs/app.log"),
    rotation="1 day",
    retention="7 days",
    level="INFO"
)

VERSION = "1.0.0"
ONLINE_MESSAGE = "Hotmart → HubSpot webhook is online"


def _expand_form(pairs: List[Tuple[str, str]]) -> Dict[str, Any]:
    """Turn bracketed form keys (data[buyer][email]=...) into nested dicts."""
    result: Dict[str, Any] = {}
    for key, value in pairs:
        parts = key.replace("]", "").split("[")
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return result


async def read_payload(req: Request) -> Dict[str, Any]:
    """Parse a JSON or form-encoded body; anything unreadable is an empty payload."""
    raw = await req.body()
    if not raw:
        return {}

    content_type = req.headers.get("content-type", "")
    try:
        if "application/x-www-form-urlencoded" in content_type:
            return _expand_form(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"Unreadable webhook body ({content_type or 'no content type'}): {e}")
        return {}

    if not isinstance(payload, dict):
        logger.warning(f"Webhook body is not an object: {type(payload).__name__}")
        return {}
    return payload


def create_app(
    settings: Optional[Settings] = None,
    idem: Optional[Idem] = None,
    hubspot: Optional[HubSpotClient] = None,
    owners: Optional[OwnerResolver] = None,
    notifier: Optional[SlackNotifier] = None
) -> FastAPI:
    """Build the webhook app. Collaborators default to ones built from settings."""
    if settings is None:
        settings = Settings()
    if idem is None:
        idem = Idem(redis_url=settings.redis_url)
    if hubspot is None:
        hubspot = HubSpotClient(token=settings.hubspot_token, timeout=settings.hubspot_timeout)
    if owners is None:
        owners = OwnerResolver(hubspot)
    if notifier is None:
        notifier = SlackNotifier(settings.slack_bot_token, settings.slack_alert_channel)

    if not settings.hotmart_secret:
        logger.warning("HOTMART_SECRET is not set, webhook calls are accepted without authentication")

    # Initialize FastAPI app
    app = FastAPI(
        title="Hotmart → HubSpot Sync",
        description="Syncs Hotmart purchase webhooks into HubSpot contacts",
        version=VERSION
    )
    app_graph = build_workflow(idem, owners, hubspot, settings.owner_email)

    @app.post("/hotmart")
    async def hotmart_webhook(req: Request):
        """
        Webhook endpoint for Hotmart purchase events.

        Always answers 200 once authenticated, so Hotmart does not retry;
        the body tells what happened (ok, duplicate, no-email, received).
        """
        start_time = time.time()
        payload = await read_payload(req)

        credential = find_credential(req.headers, req.query_params, payload)
        if not is_authorized(settings.hotmart_secret, credential):
            logger.warning(f"Rejected webhook from {req.client.host if req.client else 'unknown'}: bad or missing secret")
            return PlainTextResponse("Unauthorized", status_code=401)

        state: Dict[str, Any] = {"raw": payload, "errors": []}
        try:
            result = await app_graph.ainvoke(state)
            outcome = result.get("outcome", Outcome.OK)
        except Exception as e:
            logger.exception(f"Webhook error: {e}")
            outcome = Outcome.RECEIVED
            fields = extract_fields(payload)
            alert_state = {
                "event_id": fields["event_id"],
                "normalized": {**fields, "status": normalize_status(fields["status"])}
            }
            await run_in_threadpool(notifier.send_sync_failure_alert, alert_state, e)

        processing_time = time.time() - start_time
        logger.info(f"Webhook handled in {processing_time:.2f}s: {outcome.value}")
        return PlainTextResponse(outcome.value, status_code=200)

    @app.api_route("/hotmart", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"])
    async def hotmart_info():
        """Non-POST calls only get an informational answer."""
        return PlainTextResponse(f"{ONLINE_MESSAGE}. Send purchase events with POST.")

    @app.get("/")
    def root():
        return PlainTextResponse(ONLINE_MESSAGE)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": VERSION,
            "services": {
                "idempotency": idem.backend,
                "auth": "secret" if settings.hotmart_secret else "open",
                "owner_assignment": bool(settings.owner_email),
                "hubspot": "configured" if settings.hubspot_token else "missing_token"
            }
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Hotmart → HubSpot Sync")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level="info"
    )
