import logging
from typing import Any
from datetime import datetime, timezone

import httpx
from cloudpay.core.config import settings

logger = logging.getLogger(__name__)


class SlackService:
    def __init__(self, slack_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.slack_url = settings.SLACK_ALERTS_URL if slack_url is None else slack_url
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.slack_url)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(self.slack_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Slack alert delivery failed: {e}")
            raise

        # Slack webhooks answer with plain "ok"
        return {"status": "ok", "message": response.text.strip()}

    async def send_critical_alert(
        self,
        title: str,
        alert: str,
        platform: str = "CloudPayments",
    ) -> dict[str, Any] | None:
        if not self.enabled:
            logger.info(f"Slack alerts not configured, skipping: {title}")
            return None

        timestamp = datetime.now(timezone.utc).strftime("%b %d, %Y at %I:%M %p UTC")
        fields = [
            {"type": "mrkdwn", "text": "*Severity*\n🔴 Critical"},
            {"type": "mrkdwn", "text": f"*Environment*\n{settings.ENVIRONMENT.title()}"},
            {"type": "mrkdwn", "text": f"*Platform*\n{platform}"},
            {"type": "mrkdwn", "text": f"*Timestamp*\n{timestamp}"},
        ]

        payload: dict[str, Any] = {
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": f"🚨  {title}", "emoji": True},
                },
            ],
            "attachments": [
                {
                    "color": "#E01E5A",
                    "blocks": [
                        {"type": "section", "text": {"type": "mrkdwn", "text": alert}},
                        {"type": "divider"},
                        {"type": "section", "fields": fields},
                    ],
                }
            ],
        }

        return await self._post(payload)


slack_service = SlackService()
