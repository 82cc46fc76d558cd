"""TokenVault API Router - aggregates all API routes."""

from fastapi import APIRouter

from tokenvault.api import auth, health, tokens

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(tokens.router)
