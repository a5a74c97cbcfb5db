"""
API Routes
"""
from fastapi import APIRouter

from courier_sync.api.routes.couriers import router as couriers_router
from courier_sync.api.routes.triggers import router as triggers_router

router = APIRouter()

router.include_router(couriers_router)
router.include_router(triggers_router)
