from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv
from datetime import datetime, timezone
import asyncio
import logging

from chatsync.api.mutations import router as mutations_router
from chatsync.api.queries import router as queries_router
from chatsync.api.llm import router as llm_router
from chatsync.api.tools import router as tools_router
from chatsync.core.config import settings
from chatsync.core.errors import ChatSyncError, ValidationError
from chatsync.db.database import init_db
from chatsync.services.lifecycle import generation_supervisor
from chatsync.services.uploads import UPLOAD_URL_PREFIX

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv()

VERSION = "1.0.0"

app = FastAPI(
    title="chatsync",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Uploaded files are served back from here
app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

# Include routers
app.include_router(mutations_router, prefix="/api", tags=["Mutations"])
app.include_router(queries_router, prefix="/api", tags=["Queries"])
app.include_router(llm_router, prefix="/api", tags=["LLM"])
app.include_router(tools_router, prefix="/api", tags=["Tools"])

_background_tasks = []


@app.on_event("startup")
async def on_startup():
    """Initialize application on startup"""
    logger.info("🚀 Application starting...")
    init_db()
    _background_tasks.append(asyncio.create_task(generation_supervisor()))
    logger.info("✅ Startup completed")


@app.on_event("shutdown")
async def on_shutdown():
    """Cleanup on shutdown"""
    logger.info("👋 Application shutting down...")
    for task in _background_tasks:
        task.cancel()
    await asyncio.gather(*_background_tasks, return_exceptions=True)
    _background_tasks.clear()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "features": [
            "llm-chat",
            "image-generation",
            "file-upload",
            "web-search",
            "chat-sharing",
            "real-time-sync",
        ],
    }


@app.exception_handler(ChatSyncError)
async def chatsync_error_handler(request: Request, exc: ChatSyncError):
    """Rejected mutations and failed upstream calls become JSON errors"""
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors"""
    error = ValidationError(f"Invalid request: {exc.errors()}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(500)
async def server_error_handler(request: Request, exc):
    """Custom 500 handler"""
    logger.error(f"Internal server error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )
