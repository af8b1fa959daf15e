"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from staybook.api.routes import admin, auth, bookings, listings, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(admin.router)
api_router.include_router(listings.router)
api_router.include_router(bookings.router)
