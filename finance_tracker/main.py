import time
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from finance_tracker.auth import auth_router
from finance_tracker.config import get_settings
from finance_tracker.database import database_status, get_db, init_db
from finance_tracker.errors import register_exception_handlers
from finance_tracker.logging_config import configure_logging
from finance_tracker.routers import (
    budgets,
    goals,
    insights,
    investments,
    notifications,
    subscriptions,
    transactions,
    users,
    voice_agent,
)
from finance_tracker.services.scheduler import create_scheduler

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    init_db()

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = create_scheduler()
        scheduler.start()
        logger.info("scheduler_started")

    logger.info("app_started", environment=settings.environment)
    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("app_stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Finance Tracker API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    register_exception_handlers(app)

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    app.include_router(auth_router, prefix=f"{API_PREFIX}/auth", tags=["auth"])
    app.include_router(users.router, prefix=f"{API_PREFIX}/users", tags=["users"])
    app.include_router(
        transactions.router, prefix=f"{API_PREFIX}/transactions", tags=["transactions"]
    )
    app.include_router(budgets.router, prefix=f"{API_PREFIX}/budgets", tags=["budgets"])
    app.include_router(goals.router, prefix=f"{API_PREFIX}/goals", tags=["goals"])
    app.include_router(
        subscriptions.router, prefix=f"{API_PREFIX}/subscriptions", tags=["subscriptions"]
    )
    app.include_router(
        notifications.router, prefix=f"{API_PREFIX}/notifications", tags=["notifications"]
    )
    app.include_router(insights.router, prefix=f"{API_PREFIX}/insights", tags=["insights"])
    app.include_router(
        investments.router, prefix=f"{API_PREFIX}/investments", tags=["investments"]
    )
    app.include_router(
        voice_agent.router, prefix=f"{API_PREFIX}/voice-agent", tags=["voice agent"]
    )

    @app.get("/")
    def home():
        return {"success": True, "message": "Welcome to Finance Tracker API", "version": "1.0.0"}

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        return {
            "success": True,
            "status": "ok",
            "timestamp": datetime.utcnow().isoformat(),
            "database": database_status(db),
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
