from fastapi import APIRouter

from app.api.api_v1.endpoints import admin, cases, comments, discounts, health, notifications, payments, quotes

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(cases.router, prefix="/cases", tags=["cases"])
api_router.include_router(comments.router, prefix="/comments", tags=["comments"])
api_router.include_router(quotes.router, prefix="/quotes", tags=["quotes"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(discounts.router, prefix="/discounts", tags=["discounts"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
