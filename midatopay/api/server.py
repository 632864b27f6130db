"""
MidatoPay API Server
FastAPI app: payments, settlement, oracle, wallet mirror and realtime notifications
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import structlog

from midatopay import __version__
from midatopay.api.dependencies import limiter
from midatopay.api.routers import general, oracle, payments, transactions, wallet
from midatopay.api.services import build_services
from midatopay.api.tasks import run_price_updater
from midatopay.config import configure_logging, get_config
from midatopay.errors import (
    CorruptedWalletRecord,
    EventDecodeError,
    InvalidCredentials,
    InvalidQRCode,
    MidatoPayError,
    OracleError,
    PaymentEventNotFound,
    RpcRequestError,
    RpcUnavailable,
    TransactionFailed,
    TransactionNotFound,
    UnsupportedCurrency,
)

logger = structlog.get_logger()

ERROR_STATUS = {
    UnsupportedCurrency: status.HTTP_400_BAD_REQUEST,
    InvalidQRCode: status.HTTP_400_BAD_REQUEST,
    CorruptedWalletRecord: status.HTTP_400_BAD_REQUEST,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    TransactionNotFound: status.HTTP_404_NOT_FOUND,
    TransactionFailed: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PaymentEventNotFound: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EventDecodeError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RpcRequestError: status.HTTP_502_BAD_GATEWAY,
    OracleError: status.HTTP_502_BAD_GATEWAY,
    RpcUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: MidatoPayError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the FastAPI app"""
    config = get_config()
    configure_logging(config)

    services = getattr(app.state, "services", None) or build_services(config)
    app.state.services = services

    logger.info(
        "midatopay_starting",
        host=config.api_host,
        port=config.api_port,
        network=config.network,
        gateway=config.payment_gateway_address,
    )

    if config.watcher_enabled and services.watcher is not None:
        services.watcher.start()

    price_task = asyncio.create_task(
        run_price_updater(services.prices, config.price_update_interval_seconds)
    )

    yield

    logger.info("midatopay_shutting_down")
    price_task.cancel()
    try:
        await price_task
    except asyncio.CancelledError:
        pass
    await services.aclose()


app = FastAPI(
    title="MidatoPay API",
    description="Fiat-denominated QR payments settled on Starknet",
    version=__version__,
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MidatoPayError)
async def midatopay_error_handler(request: Request, exc: MidatoPayError):
    code = status_for(exc)
    log = logger.error if code >= 500 else logger.info
    log("request_failed", path=request.url.path, error=type(exc).__name__, detail=str(exc))
    return JSONResponse(
        status_code=code,
        content={"error": type(exc).__name__, "detail": str(exc)}
    )


@app.websocket("/ws")
async def notifications_socket(websocket: WebSocket):
    """Realtime payment confirmations; clients only listen"""
    hub = websocket.app.state.services.hub
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(websocket)


app.include_router(general.router)
app.include_router(payments.router)
app.include_router(transactions.router)
app.include_router(oracle.router)
app.include_router(wallet.router)


if __name__ == "__main__":
    import uvicorn
    config = get_config()

    uvicorn.run(
        "midatopay.api.server:app",
        host=config.api_host,
        port=config.api_port,
        reload=config.reload,
        log_level=config.log_level.lower()
    )
