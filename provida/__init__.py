"""
Provida: a minimal asynchronous dependency injection container.

Dependencies are registered under string keys as literal values, factories or
aliases of other keys, produced lazily at most once, and resolved with
coroutines. Several keys can be resolved at once by name, regular expression or
predicate, and `Context.using` injects resolved dependencies as the leading
arguments of a function.
"""

import logging

from .context import Context
from .context import Match
from .context import Provider
from .context import Strategy
from .context import StrategyKind
from .context import DependencyResolutionException
from .context import ProviderNotFoundException
from .context import UnconfiguredProviderException
from .directory import ContextDirectory


logging.getLogger(__name__).addHandler(logging.NullHandler())


__all__ = [
    "Context",
    "ContextDirectory",
    "Match",
    "Provider",
    "Strategy",
    "StrategyKind",
    "DependencyResolutionException",
    "ProviderNotFoundException",
    "UnconfiguredProviderException",
]
