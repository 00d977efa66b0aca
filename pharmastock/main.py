# pharmastock/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pharmastock.core.config import settings
from pharmastock.api.router import api_router
from pharmastock.api.exception_handlers import register_exception_handlers
from pharmastock.db.init_db import init_db
from pharmastock.db.session import SessionLocal
from pharmastock.services.expiry_scheduler import (
    run_expiry_scan,
    start_expiry_scheduler,
    stop_expiry_scheduler,
)

app = FastAPI(
    title=settings.PROJECT_NAME,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.on_event("startup")
def _startup():
    init_db()
    if settings.EXPIRY_SCAN_ON_STARTUP:
        run_expiry_scan(SessionLocal)


@app.on_event("startup")
async def _start_scheduler():
    if settings.EXPIRY_SCAN_DAILY:
        start_expiry_scheduler(SessionLocal)


@app.on_event("shutdown")
async def _stop_scheduler():
    await stop_expiry_scheduler()


# Health
@app.get("/health")
def health():
    return {"status": "ok", "service": settings.PROJECT_NAME}
