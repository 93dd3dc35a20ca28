"""API routes for Comment Gateway."""

from fastapi import APIRouter

from .confirm import router as confirm_router
from .encrypt import router as encrypt_router
from .entries import router as entries_router
from .webhooks import router as webhooks_router

# Main API router
api_router = APIRouter()

api_router.include_router(entries_router)
api_router.include_router(webhooks_router)
api_router.include_router(confirm_router)
api_router.include_router(encrypt_router)

__all__ = ["api_router"]
