from fastapi import APIRouter
from app.api.routes.home import router as home_router
from app.api.routes.trips import router as trips_router
from app.api.routes.bookings import router as bookings_router
from app.api.routes.geo import router as geo_router
from app.api.routes.auth import router as auth_router
from app.api.routes.profile import router as profile_router

api_router = APIRouter()
api_router.include_router(home_router)
api_router.include_router(trips_router)
api_router.include_router(bookings_router)
api_router.include_router(geo_router)
api_router.include_router(auth_router)
api_router.include_router(profile_router)
