from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..container import Container
from .dependencies import get_container

router = APIRouter()


@router.get("/healthz")
async def health_check(container: Container = Depends(get_container)) -> Dict[str, Any]:
    """Liveness plus a summary of bridge and observer state"""
    stats = container.tracker.stats()
    by_state = stats["byState"]
    in_progress = sum(
        by_state[state] for state in ("created", "encoding", "submitting", "pending", "confirming")
    )

    return {
        "status": "healthy",
        "network": container.settings.source_network,
        "contract": container.settings.bridge_contract_address,
        "transactions": {
            "total": stats["total"],
            "inProgress": in_progress,
            "completed": by_state["completed"],
            "failed": by_state["failed"],
        },
        "observers": container.broadcaster.observer_count,
    }
