import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class SlackService:
    def __init__(
        self,
        slack_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.slack_url = slack_url if slack_url is not None else settings.SLACK_ALERTS_URL
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.slack_url)

    async def _execute_query(
        self,
        endpoint: str,
        payload: dict[str, Any]
    ) -> dict[str, Any]:

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    endpoint,
                    json=payload,
                    timeout=30.0
                )
                response.raise_for_status()

                # Slack webhooks answer with plain text "ok"
                response_text = response.text.strip()
                if response_text:
                    try:
                        result = response.json()
                    except ValueError:
                        result = {"status": "ok", "message": response_text}
                else:
                    result = {"status": "ok", "message": "Message sent successfully"}

                return result
        except httpx.HTTPStatusError as e:
            logger.error(f"Http error: {e}")
            raise ExternalServiceError(f"Slack API error: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Unexpected error: {e}")
            raise ExternalServiceError(f"Slack API error: {e}") from e

    async def send_critical_alert(
        self,
        title: str,
        alert: str,
        platform: str | None = None,
    ) -> dict[str, Any] | None:
        if not self.enabled:
            logger.warning(f"Slack alerts disabled, dropping alert: {title}")
            return None

        timestamp = datetime.now(timezone.utc).strftime("%b %d, %Y at %I:%M %p UTC")
        env = settings.ENVIRONMENT.title()

        detail_blocks: list[dict[str, Any]] = [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": alert,
                },
            },
            {"type": "divider"},
        ]

        fields = [
            {"type": "mrkdwn", "text": "*Severity*\n🔴 Critical"},
            {"type": "mrkdwn", "text": f"*Environment*\n{env}"},
        ]
        if platform:
            fields.append({"type": "mrkdwn", "text": f"*Platform*\n{platform}"})
        fields.append({"type": "mrkdwn", "text": f"*Timestamp*\n{timestamp}"})

        detail_blocks.append({"type": "section", "fields": fields})

        payload: dict[str, Any] = {
            "blocks": [
                {
                    "type": "header",
                    "text": {
                        "type": "plain_text",
                        "text": f"🚨  {title}",
                        "emoji": True,
                    },
                },
            ],
            "attachments": [
                {
                    "color": "#E01E5A",
                    "blocks": detail_blocks,
                }
            ],
        }

        return await self._execute_query(
            endpoint=self.slack_url,
            payload=payload,
        )


slack_service = SlackService()
