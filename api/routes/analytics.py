"""
Analytics API Routes for the Sales Room service.
"""

import logging

from fastapi import APIRouter

from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/analytics")
async def get_analytics():
    """Lead counts by temperature, averages and tag distribution."""
    analytics = get_services().transcripts.get_analytics()
    return analytics.to_dict()
