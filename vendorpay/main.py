import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api import buy, health, vendors
from .api.errors import service_error_handler
from .config import Settings, settings
from .core.buy.service import BuyService
from .core.errors import ServiceError
from .core.execution.executor import TransactionExecutor
from .core.execution.ledger import LedgerClient
from .core.execution.tx_builder import TransactionBuilder
from .core.vendors.registry import VendorRegistry
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .providers.solana import SolanaLedgerClient, SolanaRpcConfig


def create_app(
    ledger: Optional[LedgerClient] = None,
    registry: Optional[VendorRegistry] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    """Wire the registry, builder, executor and buy service into a FastAPI app."""
    config = config or settings
    registry = registry if registry is not None else VendorRegistry()
    ledger = ledger or SolanaLedgerClient(
        SolanaRpcConfig(
            rpc_url=config.solana_rpc_url,
            commitment=config.solana_commitment,
            timeout_s=config.ledger_call_timeout_seconds,
        )
    )
    builder = TransactionBuilder(registry)
    executor = TransactionExecutor(ledger, builder, config.executor_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await ledger.close()

    app = FastAPI(
        title="Vendor Pay API",
        description="Vendor whitelist and buy transactions on Solana",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.ledger = ledger
    app.state.buy_service = BuyService(registry, builder, executor)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(ServiceError, service_error_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(vendors.router, tags=["Vendors"])
    app.include_router(buy.router, tags=["Buy"])

    return app


def parse_port(argv: list[str], default: int) -> int:
    """Port from the first CLI argument, else the configured default."""
    if len(argv) < 2:
        return default
    try:
        port = int(argv[1])
    except ValueError:
        raise SystemExit(f"failed to parse provided port: {argv[1]!r}")
    if not 0 < port < 65536:
        raise SystemExit(f"port out of range: {port}")
    return port


def run(argv: Optional[list[str]] = None) -> None:
    import uvicorn

    setup_logging()
    port = parse_port(argv if argv is not None else sys.argv, settings.port)
    uvicorn.run(
        create_app(),
        host=settings.host,
        port=port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    run()
