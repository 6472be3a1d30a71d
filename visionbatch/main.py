from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from visionbatch.api import image_routes
from visionbatch.core.config import settings
from visionbatch.core.errors import ConfigError
from visionbatch.core.logger import get_logger
from visionbatch.services.error_service import classify


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # release the shared vision client connection pool
    await image_routes.dispatcher.aclose()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Missing credential / instruction: the batch never started
    @app.exception_handler(ConfigError)
    async def config_error_handler(request: Request, exc: ConfigError):
        logger.warning("Rejected %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": classify(exc)})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(
        image_routes.router,
        prefix=settings.API_V1_STR,
    )

    return app


app = create_app()
