import asyncio
import logging
import traceback

import pytest

from provida import Context
from provida import StrategyKind
from provida import UnconfiguredProviderException


@pytest.fixture
def context():
    return Context()


def test_configuration_is_fluent(context):
    provider = context.provide("test-key")

    assert provider.configured is False
    assert provider.as_value("test-value") is provider
    assert provider.with_factory(lambda: "test-value") is provider
    assert provider.alias_to("other-key") is provider
    assert provider.configured is True
    assert provider.strategy.kind == StrategyKind.ALIAS
    assert provider.strategy.payload == "other-key"


def test_factory_must_be_callable(context):
    with pytest.raises(TypeError):
        context.provide("test-key").with_factory("not callable")


@pytest.mark.asyncio
async def test_unconfigured_provider_fails(context):
    provider = context.provide("test-key")

    with pytest.raises(UnconfiguredProviderException):
        await provider.get()


@pytest.mark.asyncio
async def test_memoized_resolve(context):
    count = 0

    def factory():
        nonlocal count
        count += 1

    context.provide("test-key").with_factory(factory)

    await context.resolve("test-key")
    await context.resolve("test-key")

    assert count == 1


@pytest.mark.asyncio
async def test_resolve_getter(context):
    context.provide("test-key").with_factory(lambda: "test-value")

    assert await context.resolve("test-key") == "test-value"


@pytest.mark.asyncio
async def test_factory_result_is_same_instance(context):
    context.provide("test-key").with_factory(object)

    assert await context.resolve("test-key") is await context.resolve("test-key")


@pytest.mark.asyncio
async def test_resolve_future_literal(context):
    future = asyncio.get_running_loop().create_future()
    future.set_result("test-value")

    context.provide("test-key").as_value(future)

    assert await context.resolve("test-key") == "test-value"


@pytest.mark.asyncio
async def test_coroutine_literal_is_awaited_once(context):
    count = 0

    async def compute():
        nonlocal count
        count += 1
        return "test-value"

    context.provide("test-key").as_value(compute())

    assert await context.resolve("test-key") == "test-value"
    assert await context.resolve("test-key") == "test-value"
    assert count == 1


@pytest.mark.asyncio
async def test_async_factory(context):
    async def factory():
        await asyncio.sleep(0)
        return "test-value"

    context.provide("test-key").with_factory(factory)

    assert await context.resolve("test-key") == "test-value"


@pytest.mark.asyncio
async def test_concurrent_first_resolves_share_production(context):
    count = 0

    async def factory():
        nonlocal count
        count += 1
        await asyncio.sleep(0.01)
        return object()

    context.provide("test-key").with_factory(factory)

    first, second = await asyncio.gather(
        context.resolve("test-key"), context.resolve("test-key")
    )

    assert first is second
    assert count == 1


@pytest.mark.asyncio
async def test_failed_factory_is_not_retried(context):
    count = 0

    def factory():
        nonlocal count
        count += 1
        raise RuntimeError("boom")

    context.provide("test-key").with_factory(factory)

    with pytest.raises(RuntimeError, match="boom"):
        await context.resolve("test-key")
    with pytest.raises(RuntimeError, match="boom"):
        await context.resolve("test-key")

    assert count == 1


@pytest.mark.asyncio
async def test_failed_async_factory_is_not_retried(context):
    count = 0

    async def factory():
        nonlocal count
        count += 1
        raise ValueError("bad value")

    context.provide("test-key").with_factory(factory)

    for _ in range(2):
        with pytest.raises(ValueError, match="bad value"):
            await context.resolve("test-key")

    assert count == 1


@pytest.mark.asyncio
async def test_last_strategy_wins(context):
    provider = context.provide("test-key")
    provider.as_value("literal").with_factory(lambda: "factory")

    assert provider.strategy.kind == StrategyKind.FACTORY
    assert await provider.get() == "factory"


@pytest.mark.asyncio
async def test_replacing_strategy_discards_memoized_value(context):
    count = 0

    def factory():
        nonlocal count
        count += 1
        return "factory"

    provider = context.provide("test-key").as_value("literal")
    assert await context.resolve("test-key") == "literal"

    provider.with_factory(factory)
    assert await context.resolve("test-key") == "factory"
    assert await context.resolve("test-key") == "factory"
    assert count == 1


@pytest.mark.asyncio
async def test_replacing_failed_factory_allows_recovery(context):
    provider = context.provide("test-key").with_factory(lambda: 1 / 0)

    with pytest.raises(ZeroDivisionError):
        await provider.get()

    provider.as_value("recovered")
    assert await provider.get() == "recovered"


@pytest.mark.asyncio
async def test_factory_invocation_is_logged(context, caplog):
    caplog.set_level(logging.DEBUG, logger="provida.context")
    context.provide("test-key").with_factory(lambda: "test-value")

    await context.resolve("test-key")

    assert "Invoking factory for 'test-key'" in caplog.text


def test_repr(context):
    provider = context.provide("test-key")
    assert repr(provider) == "<Provider 'test-key' UNCONFIGURED>"

    provider.as_value(1)
    assert repr(provider) == "<Provider 'test-key' LITERAL>"


@pytest.mark.asyncio
async def test_failed_factory_traceback_does_not_grow(context):
    context.provide("test-key").with_factory(lambda: 1 / 0)

    lengths = []
    for _ in range(50):
        with pytest.raises(ZeroDivisionError) as exc_info:
            await context.resolve("test-key")
        lengths.append(len(traceback.extract_tb(exc_info.value.__traceback__)))

    assert lengths[0] == lengths[-1]
