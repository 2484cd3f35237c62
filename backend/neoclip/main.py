from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from neoclip import __version__
from neoclip.api.v1.router import api_router
from neoclip.config import Settings, get_settings
from neoclip.database import database
from neoclip.exceptions import ServiceError
from neoclip.logging import configure_logging, logger
from neoclip.providers.registry import build_registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger.info("app_starting", env=settings.APP_ENV, version=__version__)
    yield
    await database.dispose()


async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.error_code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    message = details[0]["msg"] if details else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "invalid_input",
            "message": message,
            "details": details,
        },
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    # unknown or ineligible chain entries fail here, not on the first request
    registry = build_registry(settings.FALLBACK_CHAINS)

    app = FastAPI(
        title="NeoClip API",
        description="Text-to-video generation with provider fallback",
        version=__version__,
        docs_url="/docs" if settings.APP_DEBUG else None,
        lifespan=lifespan,
    )
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    app.include_router(api_router, prefix=settings.API_PREFIX)
    return app


app = create_app()
