from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..core.execution.ledger import LedgerClient
from ..core.vendors.registry import VendorRegistry
from .deps import get_ledger, get_registry

router = APIRouter()


@router.get("/healthz")
async def health_check(
    registry: VendorRegistry = Depends(get_registry),
    ledger: LedgerClient = Depends(get_ledger),
) -> Dict[str, Any]:
    """Health check endpoint that reports ledger reachability"""
    ledger_status = await ledger.health_check()

    return {
        "status": "healthy" if ledger_status.get("status") in ("healthy", "configured") else "degraded",
        "ledger": ledger_status,
        "vendors": len(registry),
    }
