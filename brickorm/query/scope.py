"""Global scopes: named constraints applied to every query of a model."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from brickorm.query.builder import QueryBuilder


class Scope(ABC):
    """A reusable constraint registered on a model's ``global_scopes``.

    The scope is registered on every builder the model creates under
    :meth:`scope_name`, which defaults to the class name.  Callers can
    disable it with ``without_global_scope(MyScope)`` or
    ``without_global_scope("MyScope")``.

    Example::

        class ActiveScope(Scope):
            def apply(self, builder, model):
                builder.where("active", True)
    """

    name: ClassVar[str | None] = None

    @classmethod
    def scope_name(cls) -> str:
        return cls.name or cls.__name__

    @abstractmethod
    def apply(self, builder: QueryBuilder[Any], model: type) -> None:
        """Add this scope's constraints to ``builder``."""


def scope_key(scope: str | Scope | type[Scope]) -> str:
    """Return the registration name for a scope name, instance or class."""
    if isinstance(scope, str):
        return scope
    return scope.scope_name()
