"""Application bootstrap for the Seriate API.

This module wires the FastAPI application, attaches middleware, and exposes small lifecycle utilities.

Functions:
    lifespan(app: FastAPI): Configure logging and initialise database state on startup.
    health_check(): Lightweight readiness probe used by monitoring and local smoke tests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from seriate.api import api_router
from seriate.core.config import get_settings
from seriate.db.session import init_db

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
