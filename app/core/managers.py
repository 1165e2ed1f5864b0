"""
QuerySets for core model mixins.

Usage:
    from core.managers import SoftDeleteQuerySet

    class MerchantAccount(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteQuerySet.as_manager()

    MerchantAccount.objects.alive().filter(processor="stripe")

Note:
    The default manager still returns deleted rows. Forward foreign keys
    from balances and payments must keep resolving after a soft delete.
"""

from __future__ import annotations

from django.db import models


class SoftDeleteQuerySet(models.QuerySet):
    """QuerySet with helpers for SoftDeleteMixin models."""

    def alive(self) -> SoftDeleteQuerySet:
        """Return records that have not been soft deleted."""
        return self.filter(deleted_at__isnull=True)

    def deleted(self) -> SoftDeleteQuerySet:
        """Return only soft-deleted records."""
        return self.filter(deleted_at__isnull=False)
