"""
Hucks IA - FastAPI Backend
Main application entry point with health check and API routing.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    public,
    credits,
    diagnosis,
    billing,
)
from services.credits import drain_pending_commits


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Hucks IA API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    yield
    # Shutdown
    drained = await drain_pending_commits()
    if drained:
        print(f"💳 Completed {drained} in-flight credit debits.")
    print("👋 Shutting down API...")


app = FastAPI(
    title="Hucks IA API",
    description="Product ad-risk diagnosis with metered credits",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(public.router, prefix="/api", tags=["Config"])
app.include_router(credits.router, prefix="/api", tags=["Credits"])
app.include_router(diagnosis.router, prefix="/api", tags=["Diagnosis"])
app.include_router(billing.router, prefix="/api", tags=["Billing"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Hucks IA API",
        "version": "0.1.0",
        "status": "running"
    }
