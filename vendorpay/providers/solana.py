"""
Solana ledger client.

Signs System Program transfers locally and talks to a Solana node over
JSON-RPC for blockhashes, submission and signature status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..core.execution.ledger import LedgerClient
from ..core.execution.models import LedgerState, SignatureStatus, Transaction
from ..core.recovery.errors import (
    ErrorCategory,
    ExpiredTokenError,
    InsufficientFundsError,
    InvalidSignatureError,
    LedgerTimeoutError,
    NetworkError,
    RateLimitError,
    RecoverableError,
    TransactionRejectedError,
    UnrecoverableError,
    classify_error,
)
from .solana_tx import build_signed_transfer, keypair_from_base58


logger = structlog.stdlib.get_logger(__name__)

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


@dataclass
class SolanaRpcConfig:
    """Configuration for Solana RPC connection."""
    rpc_url: str
    commitment: str = "confirmed"
    timeout_s: float = 10.0


class SolanaLedgerClient(LedgerClient):
    """
    Ledger client backed by a Solana JSON-RPC node.

    Retries are the executor's job: every call here is a single attempt
    that raises a classified recoverable or unrecoverable error.

    Usage:
        ledger = SolanaLedgerClient(SolanaRpcConfig(rpc_url="https://api.devnet.solana.com"))
        blockhash = await ledger.freshness_token()
        signature = await ledger.submit(transaction)
        status = await ledger.confirm(signature)
    """

    name = "solana"

    def __init__(self, config: SolanaRpcConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self.timeout_s = config.timeout_s
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_s)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make one RPC call and return its ``result`` member."""
        client = await self._get_client()

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }

        try:
            response = await client.post(
                self._config.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise LedgerTimeoutError(f"{method} timed out", operation=method) from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} failed: {e}", provider=self.name) from e

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                f"{method} rate limited",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                provider=self.name,
            )
        if response.status_code >= 500:
            raise NetworkError(f"{method} HTTP {response.status_code}", provider=self.name)
        if response.status_code >= 400:
            raise TransactionRejectedError(
                f"{method} HTTP {response.status_code}",
                reason=response.text[:200],
            )

        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"{method} returned invalid JSON", provider=self.name) from e

        if "error" in data:
            raise self._rpc_error(method, data["error"])

        return data.get("result")

    def _rpc_error(self, method: str, error: Dict[str, Any]) -> Exception:
        """Map a JSON-RPC error object onto the recovery error types."""
        message = str(error.get("message", error))
        data = error.get("data")
        logs = data.get("logs") if isinstance(data, dict) else None
        detail = " ".join([message, *(logs or [])])

        context = classify_error(Exception(detail))
        text = f"{method}: {message}"
        if context.category == ErrorCategory.EXPIRED_TOKEN:
            return ExpiredTokenError(text)
        if context.category == ErrorCategory.INSUFFICIENT_FUNDS:
            return InsufficientFundsError(text)
        if context.category == ErrorCategory.INVALID_SIGNATURE:
            return InvalidSignatureError(text)
        if context.category == ErrorCategory.RATE_LIMIT:
            return RateLimitError(text, provider=self.name)
        if context.category == ErrorCategory.TIMEOUT:
            return LedgerTimeoutError(text, operation=method)
        if context.category == ErrorCategory.NETWORK:
            return NetworkError(text, provider=self.name)
        return TransactionRejectedError(text, reason=message)

    async def freshness_token(self) -> str:
        result = await self._rpc_call(
            "getLatestBlockhash",
            [{"commitment": self._config.commitment}],
        )
        blockhash = ((result or {}).get("value") or {}).get("blockhash")
        if not blockhash:
            raise NetworkError("getLatestBlockhash returned no blockhash", provider=self.name)
        return blockhash

    async def submit(self, transaction: Transaction) -> str:
        keypair = keypair_from_base58(transaction.payer)
        signature, wire = build_signed_transfer(
            keypair,
            transaction.payee,
            transaction.amount,
            transaction.freshness_token,
        )

        options = {
            "encoding": "base64",
            "skipPreflight": False,
            "preflightCommitment": self._config.commitment,
            # Resubmission is driven by the executor with a fresh blockhash
            "maxRetries": 0,
        }
        result = await self._rpc_call("sendTransaction", [wire, options])

        if result and result != signature:
            logger.warning("signature_mismatch", expected=signature, returned=result)
        logger.debug("transaction_sent", tx_id=transaction.tx_id, signature=result or signature)
        return result or signature

    async def confirm(self, signature: str) -> SignatureStatus:
        result = await self._rpc_call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        values = (result or {}).get("value") or [None]
        status = values[0]

        if status is None:
            # Not seen yet: still in flight or dropped
            return SignatureStatus(signature=signature, state=LedgerState.PENDING)

        if status.get("err") is not None:
            return SignatureStatus(
                signature=signature,
                state=LedgerState.FAILED,
                error=str(status.get("err")),
                slot=status.get("slot"),
            )

        reached = _COMMITMENT_RANK.get(status.get("confirmationStatus") or "processed", 0)
        wanted = _COMMITMENT_RANK.get(self._config.commitment, 1)
        state = LedgerState.CONFIRMED if reached >= wanted else LedgerState.PENDING
        return SignatureStatus(
            signature=signature,
            state=state,
            slot=status.get("slot"),
            confirmations=status.get("confirmations"),
        )

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self._rpc_call("getHealth", [])
        except (RecoverableError, UnrecoverableError) as e:
            return {"status": "degraded", "ledger": self.name, "error": str(e)}
        return {"status": "healthy", "ledger": self.name}
