"""Static fallback content.

:class:`StaticFallbackGenerator` is the last line of defence: it serves a
random pre-written ``.txt`` file from a directory, and when the directory is
missing, empty, or unreadable it serves a built-in message.  It never calls an
AI provider and never raises from :meth:`generate`.
"""

from __future__ import annotations

import asyncio
import logging
import random
from pathlib import Path

from splitflap.content.types import (
    GeneratedContent,
    GenerationContext,
    GenerationMetadata,
    GeneratorValidationResult,
)

log = logging.getLogger(__name__)

DEFAULT_FALLBACK_DIRECTORY = "prompts/static"

BUILTIN_MESSAGES: tuple[str, ...] = (
    "STAY CURIOUS\nSTAY KIND",
    "GOOD THINGS TAKE TIME",
    "MAKE TODAY COUNT",
)


class StaticFallbackGenerator:
    """Serves static content when every other generator has failed.

    Args:
        directory: Directory of ``.txt`` files to choose from.
        rng: Random generator used to pick a file (seed it in tests).
    """

    def __init__(
        self,
        directory: str | Path = DEFAULT_FALLBACK_DIRECTORY,
        rng: random.Random | None = None,
    ) -> None:
        self.directory = Path(directory)
        self._rng = rng or random.Random()

    def validate(self) -> GeneratorValidationResult:
        # A missing directory is fine: the built-in messages cover it.
        if self.directory.exists() and not self.directory.is_dir():
            return GeneratorValidationResult(
                valid=False, errors=[f"Fallback path is not a directory: {self.directory}"],
            )
        return GeneratorValidationResult(valid=True)

    async def generate(self, context: GenerationContext) -> GeneratedContent:
        loop = asyncio.get_running_loop()
        picked = await loop.run_in_executor(None, self._read_random_file)

        if picked is None:
            text = self._rng.choice(BUILTIN_MESSAGES)
            source = "builtin"
        else:
            source, text = picked

        return GeneratedContent(
            text=text,
            output_mode="text",
            metadata=GenerationMetadata(
                provider="static",
                extra={
                    "source": "static-fallback",
                    "directory": str(self.directory),
                    "file": source,
                },
            ),
        )

    def _read_random_file(self) -> tuple[str, str] | None:
        try:
            files = sorted(p for p in self.directory.glob("*.txt") if p.is_file())
        except OSError:
            log.warning("Cannot list fallback directory %s.", self.directory, exc_info=True)
            return None

        if not files:
            log.warning("No .txt files in fallback directory %s; using built-in text.", self.directory)
            return None

        chosen = self._rng.choice(files)
        try:
            text = chosen.read_text(encoding="utf-8").strip()
        except OSError:
            log.warning("Cannot read fallback file %s.", chosen, exc_info=True)
            return None
        if not text:
            return None
        return chosen.name, text

    def __repr__(self) -> str:
        return f"StaticFallbackGenerator(directory={str(self.directory)!r})"
