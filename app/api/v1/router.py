from fastapi import APIRouter

from app.api.v1.health import router as health_router
from app.api.v1.keys import router as keys_router

v1_router = APIRouter()

v1_router.include_router(health_router, tags=["Health"])
v1_router.include_router(keys_router, tags=["API Keys"])
