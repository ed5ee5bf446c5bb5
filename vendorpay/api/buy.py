from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.buy.service import BuyService
from ..core.execution.models import TransactionResult, TransactionStatus
from .deps import get_buy_service


router = APIRouter()


class BuyParams(BaseModel):
    lamports: int = Field(description="Amount in lamports")
    vendor: str = Field(description="Whitelisted vendor wallet id")
    buyer_pair: str = Field(repr=False, description="Buyer keypair, base58 encoded")


class BuyResponse(BaseModel):
    tx_id: str
    signature: str
    status: TransactionStatus
    error: Optional[str] = None
    attempts: int = 1
    slot: Optional[int] = None
    submitted_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    @classmethod
    def from_result(cls, result: TransactionResult) -> "BuyResponse":
        return cls(
            tx_id=result.tx_id,
            signature=result.signature,
            status=result.status,
            error=result.error,
            attempts=result.attempts,
            slot=result.slot,
            submitted_at=result.submitted_at,
            confirmed_at=result.confirmed_at,
        )


class SignatureStatusResponse(BaseModel):
    signature: str
    state: str
    error: Optional[str] = None
    slot: Optional[int] = None
    confirmations: Optional[int] = None


@router.post("/buy", response_model=BuyResponse)
async def buy(params: BuyParams, service: BuyService = Depends(get_buy_service)):
    result = await service.buy(params.buyer_pair, params.vendor, params.lamports)
    response = BuyResponse.from_result(result)
    if result.status == TransactionStatus.FAILED:
        # Landed on the ledger but was rejected there
        return JSONResponse(status_code=502, content=response.model_dump(mode="json"))
    return response


@router.get("/transactions/{signature}")
async def transaction_status(
    signature: str,
    service: BuyService = Depends(get_buy_service),
) -> SignatureStatusResponse:
    status = await service.status(signature)
    return SignatureStatusResponse(
        signature=status.signature,
        state=status.state.value,
        error=status.error,
        slot=status.slot,
        confirmations=status.confirmations,
    )
