"""FastAPI application entry point for the session backend.

Startup sequence: load .env -> init DB.
"""

import os
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatline.api.routes import router
from chatline.core.database import init_db

load_dotenv()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("startup.begin")
    init_db()
    logger.info("startup.db_initialized")
    logger.info("startup.complete")
    yield
    logger.info("shutdown.complete")


app = FastAPI(
    title="Chatline API",
    description="Chat session persistence for the Chatline client",
    version="0.1.0",
    lifespan=lifespan,
)

# Browser clients call the API from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
