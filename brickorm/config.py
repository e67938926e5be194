"""Runtime configuration for brickORM."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class OrmConfig:
    """Runtime configuration applied to every query.

    Attributes:
        log_queries: If ``True``, emit a DEBUG log record with the SQL text
            and bindings for every executed statement.
        concurrent_eager_loads: If ``True``, independent root relations in
            one ``with_relations()`` call are fetched concurrently with
            ``asyncio.gather``.  If ``False``, they run one after another.
        pivot_prefix: Prefix used to alias pivot columns in the projection
            of a many-to-many ``get()`` so they can be split off the
            related row afterwards.
        aggregate_alias: Column alias used for aggregate results.
    """

    log_queries: bool = False
    concurrent_eager_loads: bool = True
    pivot_prefix: str = "pivot_"
    aggregate_alias: str = "aggregate"
