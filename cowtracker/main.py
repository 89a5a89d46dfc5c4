import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cowtracker.cache import layer
from cowtracker.core.config import get_settings
from cowtracker.core.errors import CowTrackerError
from cowtracker.routers import cache, cattle, farms, memberships, users, vincular
from cowtracker.services.binding_codes import BindingCodeManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    await layer.cache_layer.init_cache()

    codes = BindingCodeManager.from_settings(settings)
    codes.start_sweeper(settings.binding_code_sweep_seconds)
    app.state.binding_codes = codes
    logger.info("CowTracker API started")

    yield

    await codes.stop_sweeper()
    await layer.cache_layer.close()


app = FastAPI(
    title="CowTracker API",
    description="Livestock farm management API with PostgreSQL, SQLModel and a two-tier cache",
    swagger_ui_parameters={"displayRequestDuration": True},
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(CowTrackerError)
async def cowtracker_error_handler(request: Request, exc: CowTrackerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in errors
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message or "Invalid request"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


# Include routers
for module in (users, cattle, farms, memberships, vincular, cache):
    app.include_router(module.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "message": "Welcome to CowTracker API",
        "docs": "/docs",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
