from typing import Dict, Any, Optional
from loguru import logger
from slack_sdk.web import WebClient


class SlackNotifier:
    """Slack integration for alerting operators about failed HubSpot syncs."""

    def __init__(self, token: Optional[str] = None, channel: str = "#hotmart-alerts"):
        self.token = token
        self.channel = channel

        if not self.token:
            logger.info("No Slack token provided, sync failures are only logged")

    def send_sync_failure_alert(self, state: Dict[str, Any], error: Exception) -> Optional[str]:
        """
        Post a failed-sync alert to the operator channel.

        Args:
            state: Workflow state at the time of failure (may be partial)
            error: The exception that stopped the sync

        Returns:
            Slack message timestamp or None if not sent
        """
        if not self.token:
            return None

        try:
            client = WebClient(token=self.token)
            message = self._build_failure_message(state, error)

            response = client.chat_postMessage(
                channel=self.channel,
                text=message["text"],
                blocks=message["blocks"]
            )

            message_ts = response["ts"]
            logger.info(f"Sync failure alert sent to {self.channel}: {message_ts}")
            return message_ts

        except Exception as e:
            logger.error(f"Slack alert failed: {e}")
            return None

    def _build_failure_message(self, state: Dict[str, Any], error: Exception) -> Dict[str, Any]:
        """Build Slack message for a failed sync."""
        normalized = state.get("normalized") or {}
        event_id = state.get("event_id") or "anonymous"

        text = f":warning: Hotmart → HubSpot sync failed for {normalized.get('email', 'unknown')} (event {event_id})"

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": ":warning: HubSpot sync failed"
                }
            },
            {
                "type": "section",
                "fields": [
                    {
                        "type": "mrkdwn",
                        "text": f"*Email:*\n{normalized.get('email') or 'unknown'}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Event:*\n{event_id}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Product:*\n{normalized.get('product') or '-'}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Status:*\n{normalized.get('status') or '-'}"
                    }
                ]
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Error:* `{error}`"
                }
            }
        ]

        return {"text": text, "blocks": blocks}
