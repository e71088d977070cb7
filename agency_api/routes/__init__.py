"""
HTTP routes for the agency API.
"""

from fastapi import APIRouter

from agency_api.routes import account, contacts, dashboard, orders, pricing, users

router = APIRouter()
router.include_router(account.router)
router.include_router(users.router)
router.include_router(orders.router)
router.include_router(dashboard.router)
router.include_router(pricing.router)
router.include_router(contacts.router)
