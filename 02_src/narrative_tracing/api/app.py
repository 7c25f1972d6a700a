"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..app import Application
from ..errors import BackendUnavailableError
from ..headers import ALL_CORRELATION_HEADERS
from ..logging_config import get_logger
from .routes import create_traces_router

logger = get_logger(__name__)

# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create the tracing API around an Application (the global one by default)."""
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        await application.start()
        yield
        await application.stop()

    fastapi_app = FastAPI(
        title="Narrative Tracing API",
        description="Causal traces of story generation",
        version="0.1.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=list(ALL_CORRELATION_HEADERS),
    )

    @fastapi_app.middleware("http")
    async def echo_correlation_headers(request: Request, call_next):
        """Return the caller's correlation headers so it can match the response."""
        response = await call_next(request)
        for name in ALL_CORRELATION_HEADERS:
            value = request.headers.get(name)
            if value is not None and name not in response.headers:
                response.headers[name] = value
        return response

    @fastapi_app.exception_handler(BackendUnavailableError)
    async def backend_unavailable(request: Request, exc: BackendUnavailableError):
        logger.error("Telemetry backend unavailable: %s", exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    fastapi_app.include_router(create_traces_router(application))

    return fastapi_app
