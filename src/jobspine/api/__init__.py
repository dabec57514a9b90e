"""HTTP control surface for the scheduler (requires the ``api`` extra)."""

from jobspine.api.app import create_app
from jobspine.api.router import create_jobs_router

__all__ = ["create_app", "create_jobs_router"]
