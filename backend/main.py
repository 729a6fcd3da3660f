"""FastAPI backend for the AI product description generator."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from backend.auth import SessionStore, is_public_path
from backend.errors import error_response, install_error_handlers
from backend.routes import auth, descriptions, jobs, products, subscriptions, webhooks
from descgen.config import APP_VERSION, Settings, get_settings
from descgen.services import Services, build_services

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    environment: str
    version: str


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the app. Passing *services* skips building (and closing) them in the lifespan."""
    settings = settings or (services.settings if services else get_settings())
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = build_services(settings)
        logger.info("Service started (environment=%s, port=%s)", settings.environment, settings.port)
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()
                app.state.services = None

    app = FastAPI(
        title="AI Product Description Generator API",
        description="Bulk product descriptions for Shopify stores, billed through Stripe.",
        version=APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services
    app.state.sessions = SessionStore(settings.token_ttl_seconds)
    install_error_handlers(app, debug=settings.is_development)

    # -----------------------------------------------------------------------
    # Authentication middleware: protected paths need a bearer header.
    # Token validity is checked by require_auth.
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        if request.method == "OPTIONS" or is_public_path(path) or not path.startswith("/api/"):
            return await call_next(request)
        auth_header = request.headers.get("authorization", "")
        if not auth_header.lower().startswith("bearer "):
            return error_response(
                request, 401, "AUTHENTICATION_ERROR", "Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return await call_next(request)

    # -----------------------------------------------------------------------
    # Rate limiter (per client IP, all /api routes)
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        services: Services | None = request.app.state.services
        if request.method == "OPTIONS" or not request.url.path.startswith("/api/") or services is None:
            return await call_next(request)
        client_ip = request.client.host if request.client else "unknown"
        if not await services.rate_limiter.is_allowed(f"ip:{client_ip}"):
            return error_response(
                request, 429, "RATE_LIMIT_ERROR",
                "Too many requests from this IP, please try again later.",
                headers={"Retry-After": str(services.rate_limiter.window_seconds)},
            )
        return await call_next(request)

    # -----------------------------------------------------------------------
    # Access log
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def access_log_middleware(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s %d %.1fms",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    # -----------------------------------------------------------------------
    # CORS (added last, so outermost: headers also land on 401/429 responses)
    # -----------------------------------------------------------------------
    cors_kw: dict = {
        "allow_origins": settings.cors_origin_list,
        "allow_credentials": True,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }
    if settings.cors_origin_regex:
        cors_kw["allow_origin_regex"] = settings.cors_origin_regex
    app.add_middleware(CORSMiddleware, **cors_kw)
    logger.debug("CORS configured for origins: %s", settings.cors_origin_list)

    # -----------------------------------------------------------------------
    # Health & root
    # -----------------------------------------------------------------------
    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok", environment=settings.environment, version=APP_VERSION)

    @app.get("/api/")
    async def root():
        return {"message": "AI Product Description Generator API", "version": APP_VERSION}

    for module, tag in (
        (auth, "auth"),
        (descriptions, "descriptions"),
        (jobs, "jobs"),
        (products, "products"),
        (subscriptions, "subscriptions"),
        (webhooks, "webhooks"),
    ):
        app.include_router(module.router, prefix="/api", tags=[tag])

    return app


app = create_app()
