"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import auth, coupons, health

api_router = APIRouter()

# Signup, login, password reset, profile
api_router.include_router(auth.router)

# Spin, listing, redemption, staff verification
api_router.include_router(coupons.router)

api_router.include_router(health.router)
