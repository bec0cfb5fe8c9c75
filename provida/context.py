"""
Dependency Context Module

This module provides a small asynchronous dependency injection container. Values are
registered under string keys and produced lazily, at most once, the first time they
are resolved.

Classes:
    Match: Markers selecting every registered key or none of them.
    StrategyKind: An enumeration of the ways a provider can produce its value.
    DependencyResolutionException: Base exception raised for resolution errors.
    ProviderNotFoundException: Raised when no provider is registered for a key.
    UnconfiguredProviderException: Raised when a provider has no strategy.
    Provider: Produces and memoizes the value of a single key.
    Context: Registry of providers and the resolver over it.

Usage:
    context = Context()
    context.provide('logger').as_value(print)
    context.provide('db').with_factory(connect)
    context.provide('log').alias_to('logger')
    log = await context.resolve('log')
"""

import asyncio
import inspect
import logging
import re
import threading
from collections.abc import Hashable
from functools import wraps
from enum import Enum, auto
from typing import TYPE_CHECKING
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import NamedTuple
from typing import Optional
from types import TracebackType

if TYPE_CHECKING:
    from .directory import ContextDirectory


class Match(Enum):
    """Conditions for `Context.resolve_all` that are not tied to any key."""

    ALL = auto()
    NONE = auto()


class StrategyKind(Enum):
    """Enumeration of the ways a provider produces its value."""

    LITERAL = auto()
    FACTORY = auto()
    ALIAS = auto()


class DependencyResolutionException(Exception):
    """Raised when an error occurs during dependency resolution."""

    def __init__(self, key: str, message: str):
        super().__init__(message)
        self.key = key


class ProviderNotFoundException(DependencyResolutionException):
    """Raised when no provider has been registered for a key."""

    def __init__(self, key: str):
        super().__init__(key, f"Cannot find provider for: {key}")


class UnconfiguredProviderException(DependencyResolutionException):
    """Raised when a provider was registered but never told how to produce a value."""

    def __init__(self, key: str):
        super().__init__(key, f"Provider for '{key}' has no value, factory or alias")


class Strategy(NamedTuple):
    kind: StrategyKind
    payload: Any


class _Outcome(NamedTuple):
    value: Any
    error: Optional[Exception]
    traceback: Optional[TracebackType] = None


class Provider:
    """Produces the value registered under one key of a `Context`.

    A provider is configured with exactly one strategy: a literal value, a
    zero-argument factory or an alias to another key. The last configuration
    call wins. Literal and factory values are memoized, including failures, so a
    factory is invoked at most once for the lifetime of its strategy.
    """

    def __init__(self, context: "Context", key: str) -> None:
        self.context = context
        self.key = key
        self._strategy: Optional[Strategy] = None
        self._outcome: Optional[_Outcome] = None
        self._pending: Optional["asyncio.Future[_Outcome]"] = None
        self._logger = logging.getLogger(__name__)

    @property
    def strategy(self) -> Optional[Strategy]:
        return self._strategy

    @property
    def configured(self) -> bool:
        return self._strategy is not None

    def as_value(self, value: Any) -> "Provider":
        """
        Provide `value` as is. An awaitable value is awaited once on first resolve.

        Example:
            >>> context.provide('greeting').as_value('Hello')
        """
        return self._set_strategy(Strategy(StrategyKind.LITERAL, value))

    def with_factory(self, factory: Callable[[], Any]) -> "Provider":
        """
        Provide the result of calling `factory` with no arguments.

        The factory is invoked on first resolve and never again. It may return an
        awaitable (e.g. be an ``async def``), which is awaited before the value is
        handed out.

        Example:
            >>> context.provide('db').with_factory(lambda: connect(DSN))
        """
        if not callable(factory):
            raise TypeError(f"Factory for '{self.key}' must be callable, got {factory!r}")
        return self._set_strategy(Strategy(StrategyKind.FACTORY, factory))

    def alias_to(self, key: str) -> "Provider":
        """
        Resolve `key` on the owning context instead of producing a value here.

        Example:
            >>> context.provide('log').alias_to('logger')
        """
        return self._set_strategy(Strategy(StrategyKind.ALIAS, key))

    def _set_strategy(self, strategy: Strategy) -> "Provider":
        if self._strategy is not None:
            self._logger.debug(
                "Replacing %s strategy of '%s' with %s",
                self._strategy.kind.name,
                self.key,
                strategy.kind.name,
            )
        else:
            self._logger.debug(
                "Configured '%s' with %s strategy", self.key, strategy.kind.name
            )
        self._strategy = strategy
        self._outcome = None
        self._pending = None
        return self

    async def get(self) -> Any:
        """
        Return the value of this provider, producing it on first call.

        Returns:
            Any: The produced value, with awaitables already awaited.

        Raises:
            UnconfiguredProviderException: If no strategy has been set.
            ProviderNotFoundException: If an alias points at an unknown key.
            Exception: Whatever the factory or the awaited value raised, on
                this and every later call.
        """
        strategy = self._strategy
        if strategy is None:
            raise UnconfiguredProviderException(self.key)

        if strategy.kind == StrategyKind.ALIAS:
            return await self.context.resolve(strategy.payload)

        outcome = self._outcome
        if outcome is None:
            if self._pending is None:
                self._pending = asyncio.ensure_future(self._produce(strategy))
            pending = self._pending
            outcome = await asyncio.shield(pending)
            # the strategy may have been replaced while we were waiting
            if self._pending is pending:
                self._outcome = outcome
                self._pending = None

        if outcome.error is not None:
            raise outcome.error.with_traceback(outcome.traceback)
        return outcome.value

    async def _produce(self, strategy: Strategy) -> _Outcome:
        try:
            if strategy.kind == StrategyKind.FACTORY:
                self._logger.debug("Invoking factory for '%s'", self.key)
                value = strategy.payload()
            else:
                value = strategy.payload
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            self._logger.debug("Producing '%s' failed: %r", self.key, e)
            return _Outcome(value=None, error=e, traceback=e.__traceback__)

        self._logger.debug("Produced value for '%s'", self.key)
        return _Outcome(value=value, error=None)

    def __repr__(self) -> str:
        kind = self._strategy.kind.name if self._strategy else "UNCONFIGURED"
        return f"<Provider {self.key!r} {kind}>"


class Context:
    """A registry mapping keys to providers, and the resolver over it.

    Resolution is asynchronous: `resolve`, `resolve_all` and the functions
    returned by `using` are coroutines, so a missing key only surfaces when the
    result is awaited.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        *,
        directory: Optional["ContextDirectory"] = None,
        drop_falsy: bool = True,
    ) -> None:
        """Initialize the Context.

        Args:
            name (str, optional): The context's name. When given together with a
                `directory`, the context registers itself there under this name.
            directory (ContextDirectory, optional): Directory to register in.
            drop_falsy (bool): Whether `resolve_all` drops resolved values that
                are falsy (``0``, ``''``, ``False``, ``None``, empty containers).
                Defaults to True.
        """
        self.name = name
        self.drop_falsy = drop_falsy
        self._providers: Dict[str, Provider] = {}

        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

        if name and directory is not None:
            directory.register(name, self)
        self._logger.debug("Context %r initialized", name)

    def provide(self, key: str) -> Provider:
        """
        Create a provider for `key`, replacing any provider already registered.

        Example:
            >>> context.provide('logger').as_value(print)

        Args:
            key (str): The key to register the provider under.

        Returns:
            Provider: The new provider, to be configured by the caller.
        """
        provider = Provider(self, key)
        with self._lock:
            replaced = key in self._providers
            self._providers[key] = provider
        self._logger.debug(
            "%s provider for '%s'", "Replaced" if replaced else "Registered", key
        )
        return provider

    async def resolve(self, key: str) -> Any:
        """
        Find and return the dependency registered under `key`.

        Example:
            >>> log = await context.resolve('logger')

        Args:
            key (str): The dependency's key.

        Returns:
            Any: The resolved dependency.

        Raises:
            ProviderNotFoundException: If no provider is registered for `key`.
            UnconfiguredProviderException: If the provider has no strategy.
        """
        provider = self._providers.get(key) if isinstance(key, Hashable) else None
        if provider is None:
            raise ProviderNotFoundException(key)

        self._logger.debug("Resolving '%s'", key)
        return await provider.get()

    async def resolve_all(self, condition: Any = Match.ALL) -> List[Any]:
        """
        Resolve every dependency matching `condition`.

        The condition is one of, checked in this order:
            1. A list or tuple of conditions, each resolved in turn and the
               results concatenated.
            2. A compiled regular expression, searched in each key.
            3. A predicate called with each key.
            4. `Match.ALL` (the default) or True, matching every key.
            5. `Match.NONE`, None or False, matching nothing.
            6. Anything else, taken as a single key.

        Keys are matched in registration order and the values keep that order.
        Unless the context was created with ``drop_falsy=False``, falsy values
        are left out of the result.

        Example:
            >>> log, debug = await context.resolve_all(['log', 'debug'])

        Args:
            condition (Any, optional): The condition to match.

        Returns:
            List[Any]: The resolved dependencies.

        Raises:
            ProviderNotFoundException: If a single-key condition is not registered.
        """
        if isinstance(condition, (list, tuple)):
            groups = await self._gather(self.resolve_all(c) for c in condition)
            return self._compact(value for group in groups for value in group)

        if isinstance(condition, re.Pattern):
            pattern = condition
            keys = [key for key in self._providers if pattern.search(key)]
        elif callable(condition):
            keys = [key for key in self._providers if condition(key)]
        elif condition is Match.ALL or condition is True:
            keys = list(self._providers)
        elif condition is Match.NONE or condition is None or condition is False:
            return []
        else:
            return self._compact([await self.resolve(condition)])

        self._logger.debug("Matched %s keys for %r", len(keys), condition)
        return self._compact(await self._gather(self.resolve(key) for key in keys))

    def using(
        self,
        condition: Any,
        consumer: Optional[Callable[..., Any]] = None,
    ):
        """
        Wrap `consumer` so its dependencies are resolved and passed in first.

        Every call of the returned coroutine function resolves `condition` with
        `resolve_all` and calls `consumer` with the values followed by the
        call's own arguments. Awaitable results are awaited.

        Can be used directly or, without `consumer`, as a decorator:
            >>> greet = context.using(['log'], lambda log, name: log(f'Hello {name}'))
            >>> await greet('world')

            >>> @context.using(['log'])
            ... def greet(log, name):
            ...     log(f'Hello {name}')

        Args:
            condition (Any): The condition to resolve, as in `resolve_all`.
            consumer (Callable, optional): The function to inject into.

        Returns:
            Callable: The wrapping coroutine function, or a decorator producing
                one when `consumer` is omitted.
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
            @wraps(func)
            async def wrapper(*args, **kwargs):
                values = await self.resolve_all(condition)
                self._logger.debug(
                    "Injecting %s dependencies into '%s'",
                    len(values),
                    getattr(func, "__name__", func),
                )
                result = func(*values, *args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result

            return wrapper

        if consumer is not None:
            return decorator(consumer)
        return decorator

    def keys(self) -> List[str]:
        """Return the registered keys in registration order."""
        return list(self._providers)

    def _compact(self, values: Iterable[Any]) -> List[Any]:
        if self.drop_falsy:
            return [value for value in values if value]
        return list(values)

    @staticmethod
    async def _gather(awaitables: Iterable[Awaitable[Any]]) -> List[Any]:
        pending = list(awaitables)
        if not pending:
            return []
        return list(await asyncio.gather(*pending))

    def __contains__(self, key: object) -> bool:
        return key in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def __repr__(self) -> str:
        return f"<Context {self.name!r} with {len(self._providers)} providers>"
