"""
API v1 Routes
Progetto: Print Shop Manager (Gestionale Tipografia)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from app.api.v1 import auth, orders, stats, users

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(auth.router)
api_v1_router.include_router(users.router)
api_v1_router.include_router(orders.router)
api_v1_router.include_router(stats.router)

# Esportazione
__all__ = ["api_v1_router"]
