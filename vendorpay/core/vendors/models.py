"""
Vendor whitelist models.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Vendor:
    """A whitelisted payee. Immutable once added to the registry."""
    wallet_id: str
    name: str
    address: str = ""
    services: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet_id": self.wallet_id,
            "name": self.name,
            "address": self.address,
            "services": list(self.services),
        }
