from fastapi import APIRouter

# Public: availability & bookings
from tablekeeper.api.v1.public.availability import router as availability_router
from tablekeeper.api.v1.public.bookings import router as bookings_router

# Staff
from tablekeeper.api.v1.staff.bookings import (
    router as staff_bookings_router,
    restaurant_router as staff_restaurant_router,
)
from tablekeeper.api.v1.staff.waitlist import restaurant_waitlist_router, waitlist_router
from tablekeeper.api.v1.staff.rules import router as rules_router

api_router = APIRouter()

# --- Public ---
api_router.include_router(availability_router)
api_router.include_router(bookings_router)

# --- Staff ---
api_router.include_router(staff_bookings_router)
api_router.include_router(staff_restaurant_router)
api_router.include_router(restaurant_waitlist_router)
api_router.include_router(waitlist_router)
api_router.include_router(rules_router)
