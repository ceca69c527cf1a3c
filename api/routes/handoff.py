"""
Sales handoff API routes for the Sales Room service.
"""

import logging

from fastapi import APIRouter

from ..services import get_services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/handoff", tags=["handoff"])


@router.post("/{session_id}")
async def request_handoff(session_id: str):
    """The prospect asked to talk to sales: alert the team and sync the CRM."""
    result = await get_services().orchestrator.handoff(session_id)
    return result.to_dict()
