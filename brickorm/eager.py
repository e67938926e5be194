"""Eager-Load Orchestrator: batched relation loading for a result set.

Given hydrated parent records and dotted relation paths such as
``"posts.comments.author"``, the orchestrator groups the paths by their root
segment, resolves one relation instance per root name from the first parent
and calls its batched ``match`` once.  Remaining path segments are handed to
``match`` as nested requests, so every level issues its queries only after
the level above it has been fetched::

    ["posts", "posts.comments", "profile"]
        → {"posts": ["comments"], "profile": []}
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from brickorm.config import OrmConfig
from brickorm.errors import RelationNotFoundError

logger = logging.getLogger(__name__)


def parse_eager_paths(paths: Iterable[str]) -> dict[str, list[str]]:
    """Group dotted relation paths by their root segment.

    Args:
        paths: Dotted paths in request order.

    Returns:
        An insertion-ordered mapping from root relation name to the list of
        distinct nested sub-paths requested under it.
    """
    tree: dict[str, list[str]] = {}
    for path in paths:
        root, _, rest = path.partition(".")
        nested = tree.setdefault(root, [])
        if rest and rest not in nested:
            nested.append(rest)
    return tree


class EagerLoader:
    """Loads requested relations onto a list of parent records.

    Args:
        config: Runtime configuration; ``concurrent_eager_loads`` decides
            whether independent root relations are fetched concurrently.
    """

    def __init__(self, config: OrmConfig | None = None) -> None:
        self.config = config or OrmConfig()

    async def load(self, models: Sequence[Any], paths: Iterable[str]) -> None:
        """Attach every relation named in ``paths`` to every record in ``models``.

        Does nothing when ``models`` is empty, so a root relation that
        matched no children never triggers its nested requests.

        Raises:
            RelationNotFoundError: If the records do not define a requested
                relation.
        """
        if not models:
            return
        tree = parse_eager_paths(paths)
        if not tree:
            return

        if self.config.concurrent_eager_loads and len(tree) > 1:
            await asyncio.gather(
                *(self._load_relation(models, name, nested) for name, nested in tree.items())
            )
        else:
            for name, nested in tree.items():
                await self._load_relation(models, name, nested)

    async def _load_relation(
        self, models: Sequence[Any], name: str, nested: list[str]
    ) -> None:
        first = models[0]
        provider = getattr(first, "get_relation", None)
        relation = provider(name) if callable(provider) else None
        if relation is None:
            raise RelationNotFoundError(name, type(first).__name__)

        logger.debug(
            "Eager loading %r for %d %s record(s); nested: %s",
            name,
            len(models),
            type(first).__name__,
            nested,
        )
        await relation.match(models, name, nested)
