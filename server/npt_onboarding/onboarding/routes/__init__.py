"""Onboarding routes aggregation."""

from fastapi import APIRouter

from .admin import router as admin_router
from .employee import router as employee_router

onboarding_router = APIRouter()

onboarding_router.include_router(employee_router, prefix="/api/v1/onboarding", tags=["onboarding"])
onboarding_router.include_router(admin_router, prefix="/api/v1/admin/onboardings", tags=["admin-onboardings"])
