from fastapi import APIRouter

from services.lending.src.lending.routes.health_factors import router as health_factors_router
from services.lending.src.lending.routes.lending import router as lending_router
from services.lending.src.lending.routes.liquidations import router as liquidations_router

api_router = APIRouter(prefix="/api")
api_router.include_router(lending_router)
api_router.include_router(liquidations_router)
api_router.include_router(health_factors_router)

__all__ = ["api_router"]
