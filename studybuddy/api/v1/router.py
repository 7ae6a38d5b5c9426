"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from studybuddy.api.v1 import consistency, quota

api_router = APIRouter()

api_router.include_router(quota.router, prefix="/quota", tags=["quota"])
api_router.include_router(
    consistency.router, prefix="/admin/consistency", tags=["consistency"]
)
