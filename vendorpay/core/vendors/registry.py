"""
Vendor registry.

Append-only whitelist of vendors keyed by wallet id.

Writers serialise on a lock and publish a fresh immutable snapshot;
readers grab whatever snapshot is current without locking. A reader
therefore always sees a complete, insertion-ordered view and never a
half-written entry, whether it runs on the event loop or in a worker
thread.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

import structlog

from ..errors import DuplicateVendorError
from .models import Vendor


logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    vendors: Tuple[Vendor, ...] = ()
    index: Dict[str, Vendor] = field(default_factory=dict)


class VendorRegistry:
    """
    Whitelist of vendors allowed to receive buy transfers.

    Usage:
        registry = VendorRegistry()
        registry.add("1234324", "toto")
        registry.exists("1234324")  # True
        registry.list()             # (Vendor(wallet_id="1234324", name="toto", ...),)
    """

    def __init__(self, vendors: Optional[Iterable[Vendor]] = None):
        self._write_lock = threading.Lock()
        self._snapshot = _Snapshot()
        for vendor in vendors or ():
            self.add(vendor.wallet_id, vendor.name, vendor.address, vendor.services)

    def add(
        self,
        wallet_id: str,
        name: str,
        address: str = "",
        services: Iterable[str] = (),
    ) -> Vendor:
        """
        Whitelist a vendor.

        Raises:
            ValueError: wallet_id is empty or blank
            DuplicateVendorError: wallet_id is already whitelisted

        The id is stored exactly as given; lookups are exact-match.
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("wallet_id must not be empty")

        vendor = Vendor(
            wallet_id=wallet_id,
            name=name,
            address=address or "",
            services=tuple(services or ()),
        )

        with self._write_lock:
            current = self._snapshot
            if wallet_id in current.index:
                logger.info("vendor_add_rejected", wallet_id=wallet_id, reason="duplicate")
                raise DuplicateVendorError(wallet_id)

            index = dict(current.index)
            index[wallet_id] = vendor
            # Single reference assignment publishes the new view
            self._snapshot = _Snapshot(vendors=current.vendors + (vendor,), index=index)

        logger.info("vendor_added", wallet_id=wallet_id, name=name, total=len(index))
        return vendor

    def list(self) -> Tuple[Vendor, ...]:
        """All vendors in insertion order, as of a single point in time."""
        return self._snapshot.vendors

    def exists(self, wallet_id: str) -> bool:
        return wallet_id in self._snapshot.index

    def get(self, wallet_id: str) -> Optional[Vendor]:
        return self._snapshot.index.get(wallet_id)

    def __len__(self) -> int:
        return len(self._snapshot.vendors)

    def __contains__(self, wallet_id: object) -> bool:
        return isinstance(wallet_id, str) and self.exists(wallet_id)
