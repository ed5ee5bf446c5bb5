"""
Transaction builder for vendor transfers.
"""

import secrets
from dataclasses import replace
from typing import Optional

from ..vendors.registry import VendorRegistry
from .models import MAX_LAMPORTS, BuyRequest, Transaction


class BuildError(Exception):
    """Base exception for build errors."""
    pass


class InvalidAmountError(BuildError):
    """Amount is zero or outside the unsigned 64-bit range."""

    def __init__(self, amount: int):
        super().__init__(f"amount must be between 1 and {MAX_LAMPORTS}, got {amount}")
        self.amount = amount


class UnknownVendorError(BuildError):
    """Vendor is not whitelisted."""

    def __init__(self, wallet_id: str):
        super().__init__(f"{wallet_id} is not whitelisted")
        self.wallet_id = wallet_id


class TransactionBuilder:
    """
    Builds transfer transactions from buy requests.

    The registry check duplicates the one done by BuyService; the
    registry is append-only so a vendor seen here stays valid.
    """

    def __init__(self, registry: VendorRegistry):
        self.registry = registry

    @staticmethod
    def generate_tx_id() -> str:
        """Generate a unique transaction ID."""
        return f"tx_{secrets.token_hex(16)}"

    def build(self, request: BuyRequest, freshness_token: str) -> Transaction:
        """
        Build a transfer from buyer to vendor.

        Args:
            request: The validated buy request
            freshness_token: Recent blockhash from the ledger client

        Returns:
            Transaction ready to be submitted

        Raises:
            InvalidAmountError: amount is zero or out of range
            UnknownVendorError: vendor is not whitelisted
        """
        amount = request.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or not 0 < amount <= MAX_LAMPORTS:
            raise InvalidAmountError(amount)
        if not self.registry.exists(request.vendor):
            raise UnknownVendorError(request.vendor)
        if not freshness_token:
            raise ValueError("freshness_token must not be empty")

        return Transaction(
            tx_id=self.generate_tx_id(),
            payer=request.buyer,
            payee=request.vendor,
            amount=amount,
            freshness_token=freshness_token,
        )

    def rebuild(
        self,
        transaction: Transaction,
        freshness_token: str,
        attempt: Optional[int] = None,
    ) -> Transaction:
        """Same transfer with a new freshness token and tracking ID."""
        if not freshness_token:
            raise ValueError("freshness_token must not be empty")
        if not self.registry.exists(transaction.payee):
            raise UnknownVendorError(transaction.payee)

        return replace(
            transaction,
            tx_id=self.generate_tx_id(),
            freshness_token=freshness_token,
            attempt=attempt if attempt is not None else transaction.attempt + 1,
        )
