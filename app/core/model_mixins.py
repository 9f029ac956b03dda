"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin
    from core.managers import SoftDeleteManager

    class Budget(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = models.Manager()

Note:
    - Always list mixins before BaseModel in inheritance
    - SoftDeleteMixin requires SoftDeleteManager (see core.managers)
    - soft_delete()/restore() only flip the tombstone. Cascades that touch
      other rows (transfer legs, settlement payments) belong to the
      service layer, which runs them inside one atomic block.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteMixin(models.Model):
    """
    Soft delete support for models.

    Instead of permanently deleting records, marks them as deleted.
    Deleted records can be restored and stay out of every aggregate
    computed through the default manager.

    Fields:
        is_deleted: Boolean flag indicating soft delete status
        deleted_at: Timestamp when the record was soft deleted

    Usage:
        entry.soft_delete()
        Transaction.objects.all()      # excludes entry
        Transaction.all_objects.all()  # includes entry
        entry.restore()
    """

    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this record has been soft deleted",
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when this record was soft deleted",
    )

    class Meta:
        abstract = True

    def soft_delete(self) -> None:
        """
        Mark this record as deleted.

        Sets is_deleted=True and deleted_at to current time.
        Does nothing if the record is already deleted.
        """
        if self.is_deleted:
            return
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])

    def restore(self) -> None:
        """
        Restore a soft-deleted record.

        Sets is_deleted=False and deleted_at to None.
        """
        if not self.is_deleted:
            return
        self.is_deleted = False
        self.deleted_at = None
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])

    def hard_delete(self) -> None:
        """
        Permanently delete this record.

        Warning:
            This cannot be undone. Consider soft_delete() instead.
        """
        super().delete()
