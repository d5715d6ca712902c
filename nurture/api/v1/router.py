"""Root API router for v1 endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from nurture.api.v1 import health, leads

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router)
api_router.include_router(leads.router)


def get_api_router() -> APIRouter:
    return api_router
