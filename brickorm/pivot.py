"""Pivot records: the per-link payload of a many-to-many relation.

A pivot is not a standalone entity.  It is the row of the intermediate
table that links two records, carried on the related record as
``model.pivot`` after many-to-many loading.  Each related instance owns its
own pivot; instances are never shared between parents.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, ClassVar, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(as_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(as_type)


class Pivot:
    """Raw pivot attributes plus typed accessors.

    Subclasses may declare the extra pivot ``columns`` a relation should
    project when configured with ``BelongsToMany.using(MyPivot)``.

    Example::

        class RoleUser(Pivot):
            columns = ("granted_at", "is_admin")

        user.roles().using(RoleUser)
        role.pivot.get("granted_at", datetime)  # -> datetime
    """

    columns: ClassVar[tuple[str, ...]] = ()

    def __init__(self, attributes: dict[str, Any] | None = None) -> None:
        self.attributes: dict[str, Any] = dict(attributes or {})

    def get(self, key: str, as_type: type[T] | None = None) -> Any:
        """Return ``attributes[key]``, optionally coerced to ``as_type``.

        Coercion uses pydantic's lax mode, so ISO-8601 text becomes a
        ``datetime``, ``0``/``1`` become ``bool`` and numeric values become
        ``int``/``float``.  ``None`` is returned unchanged.

        Raises:
            pydantic.ValidationError: If the value cannot be coerced.
        """
        value = self.attributes.get(key)
        if value is None or as_type is None:
            return value
        return _adapter(as_type).validate_python(value)

    def set(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.attributes!r})"


class GenericPivot(Pivot):
    """Pivot used when no pivot class is configured."""
