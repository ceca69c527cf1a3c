"""
Slack webhook notifications for qualification events.

Whether to send is decided upstream by the notification gate; this module
only builds block payloads and posts them. A failed post is logged and
reported as False, never raised to the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

HOT_LEAD_SCORE = 75


@dataclass
class QualificationNotification:
    """What the sales channel is told about a score change."""
    session_id: Optional[str]
    score: int
    previous_score: int
    prospect_name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    criteria_met: List[str] = field(default_factory=list)
    criteria_total: int = 5

    @property
    def score_delta(self) -> int:
        return self.score - self.previous_score


def score_emoji(score: int) -> str:
    if score >= 80:
        return "🔥"
    if score >= 60:
        return "⭐"
    if score >= 40:
        return "📈"
    return "👋"


def score_urgency(score: int) -> str:
    if score >= 80:
        return "(HOT!)"
    if score >= 60:
        return "(Warm)"
    return ""


def build_qualification_payload(notification: QualificationNotification) -> Dict[str, Any]:
    emoji = score_emoji(notification.score)
    company = notification.company or "Unknown Company"
    prospect = notification.prospect_name or "Anonymous"
    delta = notification.score_delta

    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"{emoji} New Lead Qualification Update",
                "emoji": True,
            },
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Prospect:*\n{notification.prospect_name or 'Not provided'}"},
                {"type": "mrkdwn", "text": f"*Company:*\n{notification.company or 'Not provided'}"},
                {
                    "type": "mrkdwn",
                    "text": f"*Qualification:*\n{notification.score}% ({delta:+d}) {score_urgency(notification.score)}".rstrip(),
                },
                {
                    "type": "mrkdwn",
                    "text": f"*Criteria Met:*\n{len(notification.criteria_met)}/{notification.criteria_total}",
                },
            ],
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*Signals detected:* {', '.join(notification.criteria_met) or 'None yet'}",
            },
        },
    ]

    if notification.email:
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Email:* {notification.email}"},
        })

    if notification.score >= HOT_LEAD_SCORE:
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": "🔥 *HOT LEAD* - Ready for sales handoff!"}],
        })

    return {
        "text": f"{emoji} {company} - {prospect}: {notification.score}% qualified",
        "blocks": blocks,
    }


def build_handoff_payload(
    prospect_name: Optional[str],
    company: Optional[str],
    email: Optional[str],
    score: int,
    within_business_hours: bool = True,
) -> Dict[str, Any]:
    prospect_name = prospect_name or "Anonymous"
    company = company or "Unknown Company"
    if within_business_hours:
        reminder = "Respond within 5 minutes for best conversion rates!"
    else:
        reminder = "Requested outside business hours. Follow up first thing next business day."
    return {
        "text": f"🚨 HANDOFF READY: {company} - {prospect_name} ({score}% qualified)",
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "🚨 Sales Handoff Ready!", "emoji": True},
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"*{prospect_name}* from *{company}* has requested to talk to sales!\n\n"
                        f"They're *{score}% qualified* - this is a hot lead! 🔥"
                    ),
                },
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Contact:*\n{email or 'No email provided'}"},
                    {"type": "mrkdwn", "text": f"*Score:*\n{score}%"},
                ],
            },
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": reminder},
                ],
            },
        ],
    }


class SlackNotifier:
    """
    Posts qualification updates to a Slack incoming webhook.

    Args:
        webhook_url: Incoming webhook URL; nothing is sent without one
        enabled: Master switch
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        enabled: bool = True,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.enabled = enabled and bool(webhook_url)
        self.timeout = timeout
        self._transport = transport

    async def _post(self, payload: Dict[str, Any]) -> bool:
        if not self.enabled:
            logger.debug("Slack notifications disabled, skipping")
            return False

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send Slack notification: {e}")
            return False

        if response.is_success:
            logger.info("Slack notification sent")
            return True

        logger.error(f"Slack webhook failed with status {response.status_code}")
        return False

    async def notify_qualification_change(self, notification: QualificationNotification) -> bool:
        """Announce a score change that passed the notification gate."""
        return await self._post(build_qualification_payload(notification))

    async def notify_handoff_ready(
        self,
        prospect_name: Optional[str],
        company: Optional[str],
        email: Optional[str],
        score: int,
        within_business_hours: bool = True,
    ) -> bool:
        """High-priority alert when a prospect asks to talk to sales."""
        return await self._post(
            build_handoff_payload(prospect_name, company, email, score, within_business_hours)
        )
