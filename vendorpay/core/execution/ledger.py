from abc import ABC, abstractmethod
from typing import Any, Dict

from .models import SignatureStatus, Transaction


class LedgerClient(ABC):
    """Base ledger interface.

    Implementations raise ``RecoverableError`` subclasses for transient
    failures and ``UnrecoverableError`` subclasses for permanent ones.
    """

    name: str
    timeout_s: float = 10.0

    @abstractmethod
    async def freshness_token(self) -> str:
        """Return a short-lived token (recent blockhash) for building a transaction"""
        pass

    @abstractmethod
    async def submit(self, transaction: Transaction) -> str:
        """Sign and broadcast a transaction, returning its signature"""
        pass

    @abstractmethod
    async def confirm(self, signature: str) -> SignatureStatus:
        """Report the current ledger status of a signature"""
        pass

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "configured", "ledger": self.name}

    async def close(self) -> None:
        """Release network resources"""
        return None
