"""
System API routes
"""

from fastapi import APIRouter

from autotrader.services.shutdown_manager import shutdown_manager

router = APIRouter(tags=["system"])


@router.get("/api/health")
async def health():
    status = shutdown_manager.get_status()
    return {
        "status": "ok",
        "in_flight_orders": status["in_flight_count"],
        "shutting_down": status["shutting_down"],
    }
