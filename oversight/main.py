from contextlib import asynccontextmanager
import logging
import sys
import asyncio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from oversight.core.config import settings
from oversight.core.errors import ConflictError, NotFoundError, OversightError, StoreError, ValidationError
from oversight.models import create_db_and_tables
from oversight.api.v1.api import api_router # Import the main API router

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Fix for asyncpg on Windows
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Create database tables
    await create_db_and_tables()
    yield

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).strip("/") for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    StoreError: 503,
}

@app.exception_handler(OversightError)
async def oversight_error_handler(request: Request, exc: OversightError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})

app.include_router(api_router, prefix=settings.API_V1_STR) # Include the API router

@app.get("/")
async def root():
    return {"message": "Welcome to the Oversight Console API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}
