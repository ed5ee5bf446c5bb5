"""Shared fixtures for the core tests."""

import pytest

from vendorpay.core.execution.executor import TransactionExecutor
from vendorpay.core.execution.tx_builder import TransactionBuilder
from vendorpay.core.vendors.registry import VendorRegistry

from ledger_fakes import FakeLedger, fast_config


@pytest.fixture
def registry() -> VendorRegistry:
    registry = VendorRegistry()
    registry.add("1234324", "toto")
    return registry


@pytest.fixture
def builder(registry) -> TransactionBuilder:
    return TransactionBuilder(registry)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def executor(ledger, builder) -> TransactionExecutor:
    return TransactionExecutor(ledger, builder, fast_config())
