# pharmastock/api/router.py
from fastapi import APIRouter
from pharmastock.api import (
    routes_sales,
    routes_notifications,
)

api_router = APIRouter()

# Sales
api_router.include_router(routes_sales.router)

# Stock / expiry alerts
api_router.include_router(routes_notifications.router)
