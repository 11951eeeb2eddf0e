"""HTTP API for the onboarding engine."""

from onboarding_engine.api.app import create_app

__all__ = ["create_app"]
