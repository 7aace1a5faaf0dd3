"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from loc3w.api.v1 import bookings, equipment, payments, wallets, webhooks

api_router = APIRouter()

# Equipment availability and quotes
api_router.include_router(equipment.router, prefix="/equipment", tags=["Equipment"])

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Wallets
api_router.include_router(wallets.router, prefix="/wallets", tags=["Wallets"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
