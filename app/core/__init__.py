"""
Core Application - Infrastructure & Base Classes

Generic base classes the domain apps build on. No domain logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Managers (import from core.managers):
    - SoftDeleteManager: Filter deleted records by default
    - SoftDeleteQuerySet: QuerySet with soft delete operations

Services (import from core.services):
    - BaseService: Base class for service layer (atomic, after_commit)

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - NotFoundError: Resource not found
    - ConflictError: State conflicts (concurrent modifications)

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin
    from core.managers import SoftDeleteManager
    from core.exceptions import ValidationError, NotFoundError

    class Budget(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = models.Manager()

Note:
    Django models, model mixins and managers are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    # Services
    "BaseService",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
]
