"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from discover_chat import __version__
from discover_chat.api.endpoints import router
from discover_chat.services.container import ServiceContainer
from discover_chat.utils.errors import DiscoverChatError
from discover_chat.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def handle_chat_error(request: Request, exc: DiscoverChatError) -> JSONResponse:
    """Render errors raised before a stream starts."""
    logger.warning(f"{request.method} {request.url.path} rejected with {exc.code}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.as_dict()})


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        container: Services to serve with (built from the environment when omitted)

    Returns:
        Configured application; the container is available as ``app.state.container``
    """
    setup_logging()
    services = container or ServiceContainer.build()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await services.shutdown()

    app = FastAPI(
        title="Discover Chat",
        description="Streaming music discovery assistant with tool calling.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Chat",
                "description": "Stream assistant responses and read persisted conversations.",
            },
            {
                "name": "Health",
                "description": "Service health monitoring and status checks.",
            },
        ],
    )
    app.state.container = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DiscoverChatError, handle_chat_error)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("discover_chat.main:create_app", factory=True, host="0.0.0.0", port=8000, log_level="info")
