from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..core.vendors.models import Vendor
from ..core.vendors.registry import VendorRegistry
from .deps import get_registry


router = APIRouter(prefix="/vendors")

logger = structlog.stdlib.get_logger(__name__)


class VendorIn(BaseModel):
    wallet_id: str = Field(min_length=1, description="Vendor wallet address (base58)")
    name: str = Field(description="Display name")
    address: str = Field(default="", description="Postal or business address")
    services: List[str] = Field(default_factory=list, description="Services offered by the vendor")


class VendorOut(BaseModel):
    wallet_id: str
    name: str
    address: str = ""
    services: List[str] = []

    @classmethod
    def from_vendor(cls, vendor: Vendor) -> "VendorOut":
        return cls(**vendor.to_dict())


@router.get("")
async def list_vendors(registry: VendorRegistry = Depends(get_registry)) -> List[VendorOut]:
    logger.info("retrieving all vendors")
    return [VendorOut.from_vendor(v) for v in registry.list()]


@router.post("", status_code=201)
async def add_vendor(
    body: VendorIn,
    registry: VendorRegistry = Depends(get_registry),
) -> VendorOut:
    logger.info("adding new vendor", wallet_id=body.wallet_id)
    try:
        vendor = registry.add(body.wallet_id, body.name, body.address, body.services)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return VendorOut.from_vendor(vendor)
