import os
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dotenv import load_dotenv

from devcircle.routers import auth, profile, connections, chat, code_documents
from devcircle.utils.logging_config import configure_for_environment, get_logger
from devcircle.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    RequestLoggingMiddleware,
    PerformanceMiddleware,
)

load_dotenv()

# Configure logging first
configure_for_environment()
logger = get_logger(__name__)

API_VERSION = "1.0.0"
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://localhost:5500,http://127.0.0.1:5500",
    ).split(",")
    if origin.strip()
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    logger.info("DevCircle API starting up...")

    try:
        from devcircle.services.db import init_indexes
        await init_indexes()
    except Exception as e:
        logger.warning(f"Database index initialization had issues: {e}")
        logger.info("Application will continue - some operations may be slower without indexes")

    logger.info("DevCircle API startup completed")

    yield

    logger.info("DevCircle API shutting down...")


app = FastAPI(title="DevCircle API", version=API_VERSION, lifespan=lifespan)

# Middleware wraps in reverse order of registration
app.add_middleware(ExceptionHandlerMiddleware)
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)


@app.get("/")
@app.head("/")
async def root():
    """Root endpoint - handles both GET and HEAD requests for health checks"""
    return {"message": "Welcome to the DevCircle API", "version": API_VERSION, "status": "ok"}


@app.get("/health")
@app.head("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


app.include_router(auth.router, prefix="/user", tags=["auth"])
app.include_router(profile.router, prefix="/user", tags=["profile"])
app.include_router(connections.router, prefix="/user", tags=["connections"])
app.include_router(chat.router, prefix="/chat", tags=["chat"])
app.include_router(code_documents.router, prefix="/code-documents", tags=["code-documents"])

logger.info("DevCircle API initialized successfully")
