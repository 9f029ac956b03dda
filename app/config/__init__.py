# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings and the Celery application for the bookkeeping service.
#
# The Celery app is imported here so it is loaded when Django starts and
# shared_task decorators bind to it.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
