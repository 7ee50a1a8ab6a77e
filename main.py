"""
ZimPay Payroll Engine - FastAPI Application

Run with `uvicorn main:app`. Background batches are served by
`celery -A app.celery_app worker -Q payroll`.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import close_db, get_async_session, init_db
from app.middleware import RequestLoggingMiddleware
from app.routers import payroll
from app.utils.error_handling import setup_exception_handlers

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/payroll"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting {settings.app_name} ({settings.app_env}), "
        f"{settings.payroll_worker_pool_size} payslip workers per batch"
    )
    if settings.is_development:
        await init_db()
        logger.info("Payroll tables created")

    yield

    await close_db()
    logger.info(f"{settings.app_name} stopped")


app = FastAPI(
    title=settings.app_name,
    description="Dual-currency (ZWG/USD) payroll period processing",
    version="0.1.0",
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
setup_exception_handlers(app)

app.include_router(payroll.router, prefix=API_PREFIX, tags=["Payroll"])


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.app_env,
    }


@app.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_async_session)):
    """Ready once the payroll database answers."""
    await db.execute(text("SELECT 1"))
    return {"status": "ready"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.is_development)
