from brickorm.relations.base import Relatable, Relation
from brickorm.relations.belongs_to import BelongsTo
from brickorm.relations.belongs_to_many import BelongsToMany
from brickorm.relations.has_many import HasMany, HasOne
from brickorm.relations.has_many_through import HasManyThrough
from brickorm.relations.morph_many import MorphMany, MorphOne
from brickorm.relations.morph_to import MorphTo, MorphTypeMap
from brickorm.relations.morph_to_many import MorphToMany

__all__ = [
    "BelongsTo",
    "BelongsToMany",
    "HasMany",
    "HasManyThrough",
    "HasOne",
    "MorphMany",
    "MorphOne",
    "MorphTo",
    "MorphToMany",
    "MorphTypeMap",
    "Relatable",
    "Relation",
]
