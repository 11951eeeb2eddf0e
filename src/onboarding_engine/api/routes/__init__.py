"""API routes."""

from onboarding_engine.api.routes.employees import router as employees_router
from onboarding_engine.api.routes.health import router as health_router
from onboarding_engine.api.routes.onboarding import router as onboarding_router

__all__ = ["employees_router", "health_router", "onboarding_router"]
