import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import bridge, health
from .config import settings
from .core.errors import BridgeError, ErrorCategory
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .services.bridge import get_orchestrator

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.SESSION: 409,
    ErrorCategory.CONTRACT: 502,
    ErrorCategory.ORACLE: 502,
    ErrorCategory.CONNECTIVITY: 503,
    ErrorCategory.TIMEOUT: 504,
    ErrorCategory.UNKNOWN: 500,
}


def _log_initialization(task: "asyncio.Task[None]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Encryption service failed to initialize: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    orchestrator = get_orchestrator()
    # Panels report "initializing" until this finishes
    init_task = asyncio.create_task(orchestrator.initialize())
    init_task.add_done_callback(_log_initialization)
    yield
    init_task.cancel()
    await orchestrator.close()


# Create FastAPI app
app = FastAPI(
    title="Confidential Bridge API",
    description="Mint, wrap, unwrap and decrypt confidential token balances",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    status_code = STATUS_BY_CATEGORY.get(exc.context.category, 500)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(bridge.router, tags=["Bridge"])
app.include_router(bridge.panels_router, tags=["Bridge"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Confidential Bridge API",
        "version": __version__,
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "confidential_bridge.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
