"""HTTP service for the orchestrator."""

from .main import create_app

__all__ = ["create_app"]
