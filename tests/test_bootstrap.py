"""Tests for wiring the pipeline from settings."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import BLANK_LAYOUT, FakeGenerator, make_registration
from splitflap.bootstrap import STATIC_FALLBACK_ID, build_orchestrator, validate_registry
from splitflap.circuit import InMemoryCircuitStore
from splitflap.config import SplitflapSettings
from splitflap.content.registry import GeneratorRegistry
from splitflap.content.types import (
    ContentPriority,
    GenerationContext,
    GeneratorValidationResult,
)
from splitflap.errors import ConfigurationError


def make_settings(**overrides):
    values = {
        "BOARD_API_KEY": "board-key",
        "OPENROUTER_API_KEY": None,
        "DATABASE_URL": None,
        "REDIS_URL": None,
        "PREFERRED_PROVIDER": "openai",
        "ALTERNATE_PROVIDER": "anthropic",
    }
    values.update(overrides)
    return SplitflapSettings(**values)


class BrokenGenerator(FakeGenerator):
    def validate(self):
        return GeneratorValidationResult(valid=False, errors=["prompt file missing"])


@pytest.mark.asyncio
async def test_registers_static_fallback_and_uses_memory_store(tmp_path, mock_decorator):
    registry = GeneratorRegistry()
    settings = make_settings(FALLBACK_DIRECTORY=str(tmp_path))

    runtime = await build_orchestrator(registry, mock_decorator, settings)
    try:
        assert STATIC_FALLBACK_ID in registry
        fallback = registry.get_by_id(STATIC_FALLBACK_ID)
        assert fallback.registration.priority == ContentPriority.FALLBACK
        assert isinstance(runtime.circuit_store, InMemoryCircuitStore)
        assert runtime.repository is None
        assert [p.name for p in runtime.providers] == ["openai", "anthropic"]
        circuits = {c.circuit_id for c in await runtime.circuit_breaker.get_all_circuits()}
        assert circuits == {"MASTER", "PROVIDER_OPENAI", "PROVIDER_ANTHROPIC"}
    finally:
        await runtime.aclose()


@pytest.mark.asyncio
async def test_existing_fallback_is_kept(mock_decorator):
    registry = GeneratorRegistry()
    registry.register(make_registration("my-fallback", ContentPriority.FALLBACK), FakeGenerator())

    runtime = await build_orchestrator(registry, mock_decorator, make_settings())
    await runtime.aclose()

    assert STATIC_FALLBACK_ID not in registry


@pytest.mark.asyncio
async def test_ai_generators_require_api_key(mock_decorator):
    registry = GeneratorRegistry()
    registry.register(
        make_registration("haiku"), FakeGenerator(), factory=lambda provider: FakeGenerator(),
    )
    with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
        await build_orchestrator(registry, mock_decorator, make_settings())


@pytest.mark.asyncio
async def test_unknown_provider_is_configuration_error(mock_decorator):
    settings = make_settings(OPENROUTER_API_KEY="sk-or", ALTERNATE_PROVIDER="mistral")
    with pytest.raises(ConfigurationError, match="No default models"):
        await build_orchestrator(GeneratorRegistry(), mock_decorator, settings)


def test_validate_registry_lists_every_problem():
    registry = GeneratorRegistry()
    registry.register(make_registration("a"), BrokenGenerator())
    registry.register(make_registration("b"), FakeGenerator())
    registry.register(make_registration("c"), BrokenGenerator())

    with pytest.raises(ConfigurationError) as excinfo:
        validate_registry(registry)
    message = str(excinfo.value)
    assert "a: prompt file missing" in message
    assert "c: prompt file missing" in message
    assert "b:" not in message


@pytest.mark.asyncio
async def test_unreachable_database_disables_history(mock_decorator):
    settings = make_settings(DATABASE_URL="postgresql://localhost:1/none")
    with patch("splitflap.bootstrap.PostgresContentRepository") as repository_cls:
        repository_cls.return_value.initialize = AsyncMock(side_effect=OSError("refused"))
        runtime = await build_orchestrator(GeneratorRegistry(), mock_decorator, settings)

    assert runtime.repository is None
    await runtime.aclose()


@pytest.mark.asyncio
async def test_built_pipeline_dispatches_to_board(mock_decorator):
    received = []

    async def handle(request):
        received.append(await request.json())
        return web.json_response({})

    app = web.Application()
    app.router.add_post("/local-api/message", handle)

    registry = GeneratorRegistry()
    registry.register(make_registration("hello"), FakeGenerator("HELLO"))

    async with TestServer(app) as server:
        settings = make_settings(BOARD_URL=str(server.make_url("")))
        runtime = await build_orchestrator(registry, mock_decorator, settings)
        try:
            result = await runtime.orchestrator.generate_and_send(
                GenerationContext(update_type="minor", timestamp=datetime.now(timezone.utc)),
            )
        finally:
            await runtime.aclose()

    assert result.success is True
    assert result.content.text == "HELLO"
    assert received == [BLANK_LAYOUT]
