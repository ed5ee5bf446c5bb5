"""FastAPI dependencies resolving the shared core objects from app state."""

from fastapi import Request

from ..core.buy.service import BuyService
from ..core.execution.ledger import LedgerClient
from ..core.vendors.registry import VendorRegistry


def get_registry(request: Request) -> VendorRegistry:
    return request.app.state.registry


def get_buy_service(request: Request) -> BuyService:
    return request.app.state.buy_service


def get_ledger(request: Request) -> LedgerClient:
    return request.app.state.ledger
