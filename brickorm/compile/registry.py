"""Dialect lookup for adapters and builders.

Adapters, test doubles and standalone builders are configured with either a
:class:`~brickorm.compile.base.Grammar` instance or a dialect name such as
``"sqlite"`` or ``"postgresql"``.  :meth:`GrammarFactory.resolve` turns the
name into a grammar.  Grammars hold no state, so one instance per dialect
is built lazily and shared.

Dialect modules register themselves when imported::

    @GrammarFactory.register("mysql", "mariadb")
    class MySQLGrammar(Grammar):
        ...

    QueryBuilder("users", grammar="mariadb").to_sql()
"""
from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from brickorm.compile.base import Grammar
from brickorm.errors import GrammarNotFoundError


class GrammarFactory:
    """Maps dialect names and their aliases to shared grammar instances."""

    _grammars: ClassVar[dict[str, type[Grammar]]] = {}
    _aliases: ClassVar[dict[str, str]] = {}
    _instances: ClassVar[dict[str, Grammar]] = {}

    @classmethod
    def register(
        cls, name: str, *aliases: str
    ) -> Callable[[type[Grammar]], type[Grammar]]:
        """Class decorator registering a grammar under ``name`` and ``aliases``.

        Re-registering a name replaces the class and drops the cached
        instance.
        """

        def decorator(grammar_cls: type[Grammar]) -> type[Grammar]:
            key = name.lower()
            cls._grammars[key] = grammar_cls
            cls._instances.pop(key, None)
            for alias in aliases:
                cls._aliases[alias.lower()] = key
            return grammar_cls

        return decorator

    @classmethod
    def unregister(cls, name: str) -> None:
        key = cls.canonical(name)
        cls._grammars.pop(key, None)
        cls._instances.pop(key, None)
        for alias in [a for a, target in cls._aliases.items() if target == key]:
            del cls._aliases[alias]

    @classmethod
    def canonical(cls, name: str) -> str:
        """The registered dialect name for ``name`` or one of its aliases."""
        key = name.strip().lower()
        return cls._aliases.get(key, key)

    @classmethod
    def create(cls, name: str) -> Grammar:
        """Return the shared grammar for ``name``.

        Raises:
            GrammarNotFoundError: If neither a dialect nor an alias matches.
        """
        key = cls.canonical(name)
        grammar = cls._instances.get(key)
        if grammar is None:
            grammar_cls = cls._grammars.get(key)
            if grammar_cls is None:
                raise GrammarNotFoundError(name, cls.dialects())
            grammar = cls._instances[key] = grammar_cls()
        return grammar

    @classmethod
    def resolve(cls, grammar: Grammar | str) -> Grammar:
        """Accept a grammar as-is, or look a dialect name up."""
        if isinstance(grammar, Grammar):
            return grammar
        return cls.create(grammar)

    @classmethod
    def dialects(cls) -> list[str]:
        return sorted(cls._grammars)
