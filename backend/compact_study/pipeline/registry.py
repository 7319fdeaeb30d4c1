"""
Processor registry.

Maps processor names to instances.  Each pipeline owns its own registry,
so independent runs never share processors through module state.
"""

from __future__ import annotations

from typing import Iterator

from compact_study.pipeline.errors import ProcessorNotFoundError
from compact_study.pipeline.processor import ContentProcessor


class ProcessorRegistry:
    """Name → processor lookup.  Re-registering a name replaces the entry."""

    def __init__(self) -> None:
        self._processors: dict[str, ContentProcessor] = {}

    def register(self, processor: ContentProcessor) -> ContentProcessor | None:
        """Store a processor, returning the one it replaced (if any)."""
        previous = self._processors.get(processor.name)
        self._processors[processor.name] = processor
        return previous

    def get(self, name: str) -> ContentProcessor:
        """
        Return the processor registered under `name`.

        Raises:
            ProcessorNotFoundError: If nothing is registered under that name.
        """
        try:
            return self._processors[name]
        except KeyError:
            raise ProcessorNotFoundError(name) from None

    def names(self) -> list[str]:
        return list(self._processors)

    def __contains__(self, name: object) -> bool:
        return name in self._processors

    def __len__(self) -> int:
        return len(self._processors)

    def __iter__(self) -> Iterator[ContentProcessor]:
        return iter(self._processors.values())
