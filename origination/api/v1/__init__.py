from fastapi import APIRouter

from origination.api.v1.routers import (
    applications,
    documents,
    health,
    records,
    verifications,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(records.router)
api_router.include_router(documents.router)
api_router.include_router(applications.router)
api_router.include_router(verifications.router)

__all__ = ["api_router"]
