"""
Client for the external chat/AI backend.

``POST {base_url}/api/chat`` with ``{message, sessionId, context, model,
apiKey}``; the backend answers ``{success, response, sessionId}``. Every
failure is raised as a ``ChatServiceError`` whose ``kind`` says what went
wrong. ``send_with_fallback`` degrades network and timeout failures to a
canned local reply that is flagged as such.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from common.errors import ChatErrorKind, ChatServiceError

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"
BACKEND_SOURCE = "backend"


@dataclass
class ChatContext:
    """What the backend is told about the prospect and the conversation so far."""
    prospect_name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    previous_messages: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"previousMessages": list(self.previous_messages)}
        if self.prospect_name:
            data["prospectName"] = self.prospect_name
        if self.company:
            data["company"] = self.company
        if self.email:
            data["email"] = self.email
        return data


@dataclass
class ChatReply:
    """Assistant reply plus where it came from."""
    response: str
    session_id: str
    source: str = BACKEND_SOURCE
    error_kind: Optional[ChatErrorKind] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == FALLBACK_SOURCE

    @property
    def metadata(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"source": self.source}
        if self.error_kind is not None:
            data["errorKind"] = self.error_kind.value
        return data


# Ordered: first matching category wins
FALLBACK_RESPONSES: List[Tuple[Tuple[str, ...], str]] = [
    (
        ("pricing", "price", "cost"),
        "Our pricing is customized based on your needs. We typically work with companies "
        "doing $10k-$200k/month who want to scale without hiring. What's your current "
        "monthly revenue range?",
    ),
    (
        ("demo", "see it"),
        "I'd love to show you how it works! Based on our conversation, I think you'd be a "
        "great fit. Should I connect you with our team for a personalized demo?",
    ),
    (
        ("how it work", "how does it work", "how do you work"),
        "We combine AI automation with human excellence. Our AI handles lead qualification, "
        "follow-ups, and meeting prep 24/7, while your team focuses on closing. Most clients "
        "see 2x revenue in 90 days. What's your biggest sales bottleneck right now?",
    ),
    (
        ("timeline", "how long", "how soon", "when can", "get started"),
        "Most teams are up and running within a couple of weeks, depending on how much of "
        "your current process we plug into. When are you hoping to have something in place?",
    ),
    (
        ("integrat", "crm", "salesforce", "hubspot", "connect with"),
        "We work alongside the tools you already use, including the major CRMs. Which "
        "systems would this need to fit into on your side?",
    ),
    (
        ("problem", "challenge", "struggl", "pain", "bottleneck", "frustrat"),
        "That's a common challenge for growing sales teams. Can you tell me a bit more about "
        "where deals are getting stuck today?",
    ),
]

DEFAULT_RESPONSE = (
    "That's interesting! Tell me more about your current sales process and what challenges "
    "you're facing. I'm here to help figure out if we're a good fit."
)


def get_fallback_response(message: str) -> str:
    """Canned reply picked by keyword. Never presented as an AI answer."""
    lower = message.lower()
    for keywords, reply in FALLBACK_RESPONSES:
        if any(k in lower for k in keywords):
            return reply
    return DEFAULT_RESPONSE


class ChatClient:
    """
    Async client for the chat backend.

    Args:
        base_url: Backend root URL
        model: Model name forwarded to the backend
        api_key: API key forwarded to the backend
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    async def send_message(
        self,
        message: str,
        session_id: Optional[str],
        context: Optional[ChatContext] = None,
    ) -> ChatReply:
        """
        Send one user message to the backend.

        Raises:
            ChatServiceError: kind ``timeout``, ``network``, ``api`` or ``parse``
        """
        payload = {
            "message": message,
            "sessionId": session_id,
            "context": (context or ChatContext()).to_dict(),
            "model": self.model,
            "apiKey": self.api_key,
        }
        error_context = {"session_id": session_id, "endpoint": self.endpoint}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise ChatServiceError(
                f"Chat request timed out after {self.timeout}s",
                kind=ChatErrorKind.TIMEOUT,
                context=error_context,
            ) from e
        except httpx.HTTPError as e:
            raise ChatServiceError(
                f"Chat backend unreachable: {e}",
                kind=ChatErrorKind.NETWORK,
                context=error_context,
            ) from e

        if not response.is_success:
            raise ChatServiceError(
                self._error_message(response),
                kind=ChatErrorKind.API,
                status_code=response.status_code,
                context=error_context,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ChatServiceError(
                "Chat backend returned malformed JSON",
                kind=ChatErrorKind.PARSE,
                status_code=response.status_code,
                context=error_context,
            ) from e

        if isinstance(body, dict) and body.get("success") is False:
            raise ChatServiceError(
                body.get("error") or "Chat request failed",
                kind=ChatErrorKind.API,
                status_code=response.status_code,
                context=error_context,
            )

        if not isinstance(body, dict) or not isinstance(body.get("response"), str):
            raise ChatServiceError(
                "Chat backend response is missing 'response'",
                kind=ChatErrorKind.PARSE,
                status_code=response.status_code,
                context=error_context,
            )

        return ChatReply(
            response=body["response"],
            session_id=body.get("sessionId") or session_id or "",
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"Chat request failed with status {response.status_code}"
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return "Chat request failed"

    async def send_with_fallback(
        self,
        message: str,
        session_id: Optional[str],
        context: Optional[ChatContext] = None,
    ) -> ChatReply:
        """
        Like ``send_message`` but answers locally when the backend cannot be
        reached. API and parse errors still propagate.
        """
        try:
            return await self.send_message(message, session_id, context)
        except ChatServiceError as e:
            if not e.retryable:
                raise
            logger.warning(f"Chat backend {e.kind.value} error, using fallback reply: {e.message}")
            return ChatReply(
                response=get_fallback_response(message),
                session_id=session_id or f"demo_{int(time.time() * 1000)}",
                source=FALLBACK_SOURCE,
                error_kind=e.kind,
            )
