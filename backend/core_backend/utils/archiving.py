"""
Archiving (soft delete) support for catalog records.

Menu items, variants and ingredients are never hard-deleted: historical orders
reference them, and a refund must still be able to load an item that was
archived after the sale.
"""

from django.conf import settings
from django.db import models
from django.utils import timezone


class ArchivableQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)


class ArchivableManager(models.Manager):
    """
    Default manager hides archived records; ``with_archived()`` exposes all.
    """

    def get_queryset(self):
        return ArchivableQuerySet(self.model, using=self._db).active()

    def with_archived(self):
        return ArchivableQuerySet(self.model, using=self._db)


class ArchivableMixin(models.Model):
    """
    Abstract base giving a model an ``is_active`` flag plus archive metadata.

    ``objects`` filters archived rows out; ``all_objects`` does not and is what
    lookups by primary key from historical records should use.
    """

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive records are archived and cannot be sold or stocked.",
    )
    archived_at = models.DateTimeField(null=True, blank=True)
    archived_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="%(app_label)s_%(class)s_archived",
    )

    objects = ArchivableManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True

    def archive(self, archived_by=None):
        self.is_active = False
        self.archived_at = timezone.now()
        self.archived_by = archived_by
        self.save(update_fields=["is_active", "archived_at", "archived_by"])

    def unarchive(self):
        self.is_active = True
        self.archived_at = None
        self.archived_by = None
        self.save(update_fields=["is_active", "archived_at", "archived_by"])

    def delete(self, using=None, keep_parents=False):
        """Archive instead of deleting; historical orders still reference the row."""
        self.archive()
