from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager, suppress
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Optional
import uvicorn
from app.artifact.service.stager import ArtifactStager
from app.chat.api.handler import error_response
from app.chat.api.route import chat_router
from app.chat.repository.chat_repository import ChatRepository
from app.chat.service.dispatch_service import DispatchPipeline
from app.conf.config import AppConfig, build_app_config
from app.core.config import settings
from app.core.errors import DispatchError
from app.core.keepalive import run_keepalive
from app.core.logger import get_logger
from app.llm.service.provider.dalle import DalleProvider
from app.llm.service.provider.openai_provider import OpenAIProvider
from app.llm.service.provider.stability import StabilityProvider
from app.llm.service.router_service import ProviderRouter
from pkg.db_util.postgres_conn import PostgresConnection
from pkg.storage.supabase_client import SupabaseStorageClient
from dotenv import load_dotenv
import asyncio
import sys

# Load .env so os.getenv picks up values from your .env file
load_dotenv()

logger = get_logger("chat-dispatch")

# Paths served even when startup failed
OPEN_PATHS = {"/ping", "/health", "/", "/docs", "/openapi.json"}


def missing_configuration(config: AppConfig) -> list[str]:
    missing = []
    if config.postgres is None:
        missing.append("POSTGRES_HOST/POSTGRES_USER/POSTGRES_PASSWORD")
    if not config.storage.url:
        missing.append("SUPABASE_URL")
    if not config.storage.service_key:
        missing.append("SUPABASE_SERVICE_KEY")
    return missing


def build_router(config: AppConfig) -> ProviderRouter:
    dalle = DalleProvider(config.openai)
    stability = StabilityProvider(config.stability)
    for provider in (dalle, stability):
        if not provider.is_enabled():
            logger.warning(f"Image provider {provider.name} disabled: missing credentials")
    return ProviderRouter(
        text_provider=OpenAIProvider(config.openai),
        image_providers={dalle.name: dalle, stability.name: stability},
        # Any selector other than an exact provider name goes to Stability
        fallback_image_provider=stability.name,
        policy=config.call_policy,
    )


def _mark_degraded(app: FastAPI, error: str):
    app.state.dispatch_pipeline = None
    app.state.startup_complete = False
    app.state.startup_error = error


def create_app(pipeline: Optional[DispatchPipeline] = None) -> FastAPI:
    """Build the FastAPI app; a ready pipeline skips infrastructure wiring."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager - ensures startup completes before accepting requests"""
        logger.info("Chat Dispatch Service starting up...")
        logger.info(f"Python: {sys.version}")

        if pipeline is not None:
            app.state.dispatch_pipeline = pipeline
            app.state.startup_complete = True
            app.state.startup_error = None
            yield
            return

        config = build_app_config(settings)
        missing = missing_configuration(config)
        if missing:
            error_msg = f"Missing required environment variables: {', '.join(missing)}"
            logger.error(error_msg)
            logger.error("Application will start in degraded mode")
            _mark_degraded(app, error_msg)
            yield
            return

        postgres_conn = None
        storage_client = None
        keepalive_task = None
        try:
            postgres_conn = PostgresConnection(config.postgres, logger)
            logger.info("Initializing database engine with retry logic...")
            try:
                await asyncio.wait_for(postgres_conn.get_engine(max_retries=5, initial_delay=2.0), timeout=60.0)
            except asyncio.TimeoutError:
                raise ConnectionError("Database connection timeout - check network/credentials")
            await postgres_conn.create_tables()

            storage_client = SupabaseStorageClient(logger, config.storage)
            stager = ArtifactStager(storage_client, url_expiry_seconds=config.storage.signed_url_expiry_seconds)
            repository = ChatRepository(postgres_conn.get_session)

            app.state.postgres_conn = postgres_conn
            app.state.storage_client = storage_client
            app.state.dispatch_pipeline = DispatchPipeline(repository, build_router(config), stager)
            app.state.startup_complete = True
            app.state.startup_error = None

            if settings.KEEPALIVE_URL:
                logger.info(f"Self-ping enabled: {settings.KEEPALIVE_URL} every {settings.KEEPALIVE_INTERVAL_SECONDS}s")
                keepalive_task = asyncio.create_task(
                    run_keepalive(settings.KEEPALIVE_URL, settings.KEEPALIVE_INTERVAL_SECONDS)
                )

            logger.info("✓ Startup complete - application is ready!")

        except Exception as e:
            logger.error(f"✗ Startup failed: {e}", exc_info=True)
            logger.error("Application will start in degraded mode - check logs above")
            _mark_degraded(app, str(e))

        yield

        logger.info("Chat Dispatch Service shutting down...")
        if keepalive_task is not None:
            keepalive_task.cancel()
            with suppress(asyncio.CancelledError):
                await keepalive_task
        if storage_client is not None:
            await storage_client.close()
        if postgres_conn is not None:
            await postgres_conn.close_engine()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Routes chat prompts to text and image providers and keeps conversations",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Startup Check Middleware - ensures no requests processed before startup completes
    class StartupCheckMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            if request.url.path in OPEN_PATHS:
                return await call_next(request)

            if not getattr(request.app.state, "startup_complete", False):
                startup_error = getattr(request.app.state, "startup_error", None)
                message = (
                    f"Service initialization failed: {startup_error}" if startup_error
                    else "Service is starting up. Please retry in a few seconds."
                )
                return error_response(503, message)

            return await call_next(request)

    app.add_middleware(StartupCheckMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Convert HTTPException to the {error} format the client expects"""
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        )
        logger.warning(f"Rejected request to {request.url.path}: {problems}")
        return error_response(400, f"Invalid request: {problems}")

    @app.exception_handler(DispatchError)
    async def dispatch_exception_handler(request: Request, exc: DispatchError):
        return error_response(exc.status_code, exc.message)

    app.include_router(chat_router)

    @app.get("/health")
    async def health():
        """Shows service status"""
        startup_complete = getattr(app.state, "startup_complete", False)
        startup_error = getattr(app.state, "startup_error", None)
        if not startup_complete:
            return {
                "status": "starting" if startup_error is None else "degraded",
                "service": "chat-dispatch",
                "message": startup_error or "Application is still starting up...",
                "startup_complete": False,
            }

        pipeline_ready = getattr(app.state, "dispatch_pipeline", None)
        checks = {"dispatch_pipeline": "✓ ready" if pipeline_ready else "✗ not_ready"}
        if pipeline_ready:
            router = pipeline_ready.router
            providers = [router.text_provider, *router.image_providers.values()]
            for provider in providers:
                checks[f"provider:{provider.name}"] = "✓ enabled" if provider.is_enabled() else "✗ disabled"
        return {
            "status": "ok" if pipeline_ready else "degraded",
            "service": "chat-dispatch",
            "checks": checks,
            "startup_complete": True,
        }

    @app.get("/")
    async def root():
        """Root endpoint - simple check that app is running"""
        return {
            "service": "chat-dispatch",
            "version": "1.0.0",
            "status": "running",
            "health_check": "/health",
        }

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
