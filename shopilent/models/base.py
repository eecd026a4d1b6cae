from typing import Any, Iterable, Optional

from tortoise import fields, models

from shopilent.core.clock import utcnow
from shopilent.core.errors import ConcurrencyConflictError


class VersionedModel(models.Model):
    """
    Abstract base for aggregates guarded by optimistic concurrency.

    Every write goes through save_versioned(), which issues
    UPDATE ... WHERE id = ? AND version = ? and bumps the version. A writer that
    loaded a stale copy updates zero rows and gets ConcurrencyConflictError.
    """
    version = fields.IntField(default=1)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True

    async def save_versioned(self, update_fields: Iterable[str], using_db: Optional[Any] = None) -> None:
        expected = self.version
        now = utcnow()
        values = {name: getattr(self, name) for name in update_fields}
        values["updated_at"] = now

        queryset = type(self).filter(pk=self.pk, version=expected)
        if using_db is not None:
            queryset = queryset.using_db(using_db)
        updated = await queryset.update(version=expected + 1, **values)

        if not updated:
            raise ConcurrencyConflictError(
                f"{type(self).__name__} {self.pk} was modified concurrently (expected version {expected})."
            )
        self.version = expected + 1
        self.updated_at = now
