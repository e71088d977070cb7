"""
Dependency wiring for the FastAPI app.

Backends are built once by ``build_database`` / ``build_identity_provider`` at
startup and stored on ``app.state``; request handlers reach them through the
``get_*`` dependencies below.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from agency_api.config import Settings
from agency_api.contacts import ContactService
from agency_api.credentials import load_service_account, validate_service_account
from agency_api.dashboard import DashboardService
from agency_api.db import Database, InMemoryDatabase
from agency_api.identity import (
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
)
from agency_api.mongo import MongoDatabase
from agency_api.orders import OrderService
from agency_api.pricing import PricingPlanService
from agency_api.users import UserService

logger = logging.getLogger(__name__)


def build_database(settings: Settings) -> Database:
    if settings.use_in_memory_backends or not settings.mongodb_uri:
        logger.info("Using in-memory database")
        return InMemoryDatabase()
    return MongoDatabase.from_settings(settings)


def build_identity_provider(settings: Settings) -> IdentityProvider:
    if settings.use_in_memory_backends:
        logger.info("Using in-memory identity provider")
        return InMemoryIdentityProvider()
    service_account = load_service_account(settings)
    validate_service_account(service_account, settings.firebase_project_id)
    return FirebaseIdentityProvider(service_account)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_order_service(
    database: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
) -> OrderService:
    return OrderService(
        database.orders, strict_transitions=settings.strict_order_transitions
    )


def get_dashboard_service(database: Database = Depends(get_database)) -> DashboardService:
    return DashboardService(database)


def get_user_service(
    database: Database = Depends(get_database),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> UserService:
    return UserService(database.users, identity)


def get_pricing_service(database: Database = Depends(get_database)) -> PricingPlanService:
    return PricingPlanService(database.pricing_plans)


def get_contact_service(database: Database = Depends(get_database)) -> ContactService:
    return ContactService(database.contacts)
