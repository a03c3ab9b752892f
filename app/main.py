"""
FastAPI Application - Crypto Quote Proxy

Read-only JSON API in front of the Binance public spot endpoints. Callers get
current and historical quotes for a fixed set of symbols; rate limits, auth
failures and timeouts upstream are absorbed by caching and fallbacks.

Endpoints:
    - GET /health
    - GET /price?symbol=BTC&currency=USD
    - GET /history?symbol=BTC&days=1&interval=hourly

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 5000

Docs:
    - Swagger: http://localhost:5000/docs
    - ReDoc: http://localhost:5000/redoc
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import Settings, settings, validate_configuration
from core.errors import QuoteProxyError
from core.logging import logger, set_log_level
from core.schemas import ErrorResponse, HealthResponse, HistoryResponse, PriceResponse
from core.upstream_interface import UpstreamClient
from core.utils.time import Clock, system_clock
from exchanges.binance import BinanceSpotClient
from services.history_service import build_history_service
from services.price_service import PriceService
from storage.cache import CacheStore


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Unsupported symbol/currency or invalid query"},
    401: {"model": ErrorResponse, "description": "Upstream rejected credentials"},
    429: {"model": ErrorResponse, "description": "Upstream rate limit with no cached data"},
    502: {"model": ErrorResponse, "description": "Upstream returned no data"},
}


def build_services(app: FastAPI, config: Settings, client: UpstreamClient, clock: Clock) -> None:
    """Create the process-wide caches and services and attach them to app.state."""
    price_cache = CacheStore(clock=clock, max_entries=config.cache_max_entries, name="price-cache")
    history_cache = CacheStore(clock=clock, max_entries=config.cache_max_entries, name="history-cache")

    app.state.price_cache = price_cache
    app.state.history_cache = history_cache
    app.state.price_service = PriceService(client, price_cache, config, clock=clock)
    app.state.history_service = build_history_service(config, client, history_cache, price_cache, clock=clock)


def create_app(
    config: Optional[Settings] = None,
    client: Optional[UpstreamClient] = None,
    clock: Clock = system_clock
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings (defaults to the global instance)
        client: Upstream client; when omitted a BinanceSpotClient is opened
            for the lifetime of the app
        clock: Callable returning epoch ms, shared by caches and services
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown."""
        logger.info("=== Application Starting ===")
        validate_configuration(config)
        set_log_level(config.log_level)

        if client is not None:
            build_services(app, config, client, clock)
            logger.info("=== Started Successfully ===")
            yield
        else:
            async with BinanceSpotClient(config) as upstream:
                build_services(app, config, upstream, clock)
                logger.info("=== Started Successfully ===")
                yield

        logger.info("=== Shutdown Complete ===")

    app = FastAPI(
        title="Crypto Quote Proxy",
        description=(
            "Cached, rate-limit tolerant spot and history quotes for BTC, ETH, SOL and ASTER.\n\n"
            "## REST Endpoints\n"
            "- `GET /health` - Health check\n"
            "- `GET /price?symbol=BTC&currency=USD` - Current spot price\n"
            "- `GET /history?symbol=BTC&days=1&interval=hourly` - Price series (hourly|daily)\n\n"
            "Responses served from cache carry `cached: true`; fallbacks add a `warning`."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"]
    )

    # ============================================
    # System Endpoints
    # ============================================

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Liveness check; does not call upstream."""
        return HealthResponse()

    # ============================================
    # Market Data Endpoints
    # ============================================

    @app.get(
        "/price",
        response_model=PriceResponse,
        response_model_exclude_unset=True,
        responses=ERROR_RESPONSES,
        tags=["Market Data"]
    )
    async def get_price(
        request: Request,
        symbol: str = Query(default="BTC", description="Public symbol (BTC, ETH, SOL, ASTER)"),
        currency: str = Query(default="USD", description="Quote currency (USD only)")
    ):
        """
        Current spot price.

        Example:
            GET /price?symbol=ETH&currency=USD
        """
        return await request.app.state.price_service.handle_price(symbol, currency)

    @app.get(
        "/history",
        response_model=HistoryResponse,
        response_model_exclude_unset=True,
        responses=ERROR_RESPONSES,
        tags=["Market Data"]
    )
    async def get_history(
        request: Request,
        symbol: str = Query(default="BTC", description="Public symbol (BTC, ETH, SOL, ASTER)"),
        days: int = Query(default=1, ge=1, description="Look-back window in days"),
        interval: str = Query(default="hourly", description="hourly or daily")
    ):
        """
        Price series, oldest point first.

        Examples:
            GET /history?symbol=BTC&days=1&interval=hourly
            GET /history?symbol=SOL&days=30&interval=daily
        """
        return await request.app.state.history_service.handle_history(symbol, days, interval)

    # ============================================
    # Error Handlers
    # ============================================

    @app.exception_handler(QuoteProxyError)
    async def quote_proxy_error_handler(request: Request, exc: QuoteProxyError):
        """Render service errors as {error, details}."""
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Invalid query parameters are client errors."""
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request parameters", "details": jsonable_errors(exc)}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        """Handle 404 and other routing errors."""
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "Not found", "path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        """Handle unexpected errors without taking the process down."""
        logger.error(f"Internal error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app = create_app()
