"""Shared fixtures for the splitflap test suite."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from splitflap.content.types import (
    ContentPriority,
    FrameResult,
    GeneratedContent,
    GenerationContext,
    GenerationMetadata,
    GeneratorRegistration,
    GeneratorValidationResult,
)

BLANK_LAYOUT = [[0] * 22 for _ in range(6)]


class FakeProvider:
    """AI provider identity used by retry and orchestrator tests."""

    def __init__(self, name: str) -> None:
        self.name = name


class FakeGenerator:
    """Generator that returns a fixed result or raises a fixed error."""

    def __init__(self, text: str = "HELLO WORLD", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls = 0

    async def generate(self, context: GenerationContext) -> GeneratedContent:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return GeneratedContent(text=self.text, metadata=GenerationMetadata(model="test-model"))

    def validate(self) -> GeneratorValidationResult:
        return GeneratorValidationResult(valid=True)


def make_registration(
    generator_id: str,
    priority: ContentPriority = ContentPriority.NORMAL,
    **kwargs,
) -> GeneratorRegistration:
    return GeneratorRegistration(
        id=generator_id,
        name=generator_id.replace("-", " ").title(),
        priority=priority,
        **kwargs,
    )


@pytest.fixture
def major_context():
    return GenerationContext(
        update_type="major",
        timestamp=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def minor_context():
    return GenerationContext(
        update_type="minor",
        timestamp=datetime(2024, 6, 1, 12, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def preferred():
    return FakeProvider("openai")


@pytest.fixture
def alternate():
    return FakeProvider("anthropic")


@pytest.fixture
def mock_decorator():
    """Frame decorator returning a blank layout."""
    decorator = MagicMock()
    decorator.decorate = AsyncMock(return_value=FrameResult(layout=BLANK_LAYOUT, warnings=[]))
    return decorator


@pytest.fixture
def mock_display():
    display = MagicMock()
    display.send_layout = AsyncMock()
    return display


@pytest.fixture
def mock_repository():
    repository = MagicMock()
    repository.save_content = AsyncMock(return_value=1)
    return repository
