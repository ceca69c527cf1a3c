"""
Chat API Routes for the Sales Room service.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class ProspectPayload(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None


class ChatRequest(BaseModel):
    # Length and content rules are enforced by the guardrails so the
    # prospect sees their exact wording.
    message: str = ""
    session_id: Optional[str] = None
    prospect: Optional[ProspectPayload] = None


class ChatResponse(BaseModel):
    response: str
    session_id: str
    source: str
    is_fallback: bool
    score: int
    previous_score: int
    ready_to_connect: bool
    became_ready: bool
    tags: List[str] = Field(default_factory=list)
    notified: bool = False
    crm_synced: bool = False
    processing_time_ms: float
    timestamp: str


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest):
    """
    Process a prospect message.

    1. Validate input  2. Re-assess qualification  3. Notify on big moves
    4. Get the assistant reply  5. Store the transcript
    """
    services = get_services()
    prospect = request.prospect.model_dump() if request.prospect else None

    turn = await services.orchestrator.process_message(
        request.message,
        session_id=request.session_id,
        prospect=prospect,
    )
    return ChatResponse(**turn.to_dict())


@router.get("/chat/{session_id}")
async def get_conversation(session_id: str):
    """Live conversation state for a session."""
    services = get_services()
    conversation = services.orchestrator.get_conversation(session_id)
    if conversation is None:
        return {"session_id": session_id, "messages": [], "qualification_status": None}

    status = conversation.qualification_status
    return {
        "session_id": session_id,
        "messages": [m.to_dict() for m in conversation.messages],
        "prospect": conversation.prospect.to_dict(),
        "qualification_status": status.to_dict(),
        "ready_to_connect": status.ready_to_connect,
    }
