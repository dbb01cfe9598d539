from typing import Any, Dict

from fastapi import APIRouter

from ..services.bridge import get_orchestrator

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint that verifies ledger and encryption service status"""
    return await get_orchestrator().health_check()
