"""Shared fixtures: an in-memory span exporter and a scriptable driver."""

import copy
from unittest.mock import MagicMock

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from llumiverse.core.driver import AbstractDriver, DriverOptions
from llumiverse.core.types import (
    Completion,
    CompletionResult,
    EmbeddingsResult,
)

# The global TracerProvider can only be set once per process
_exporter = InMemorySpanExporter()
_provider = TracerProvider()
_provider.add_span_processor(SimpleSpanProcessor(_exporter))
trace.set_tracer_provider(_provider)


@pytest.fixture
def span_exporter():
    """Provide the in-memory exporter, cleared around each test."""
    _exporter.clear()
    yield _exporter
    _exporter.clear()


class FakeDriver(AbstractDriver[str]):
    """Driver answering from canned completions and chunks."""

    provider = "test-provider"

    def __init__(
        self,
        *,
        completion=None,
        chunks=(),
        error=None,
        streamable=True,
        logger=None,
        options=None,
    ):
        super().__init__(options or DriverOptions(logger=logger or MagicMock()))
        self.completion = completion or Completion(
            result=[CompletionResult.text("Hello")], finish_reason="stop"
        )
        self.chunks = list(chunks)
        self.error = error
        self.streamable = streamable
        self.prompts = []
        self.stream_closed = False

    async def request_text_completion(self, prompt, options):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.completion)

    async def request_text_completion_stream(self, prompt, options):
        self.prompts.append(prompt)
        try:
            for chunk in self.chunks:
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
        finally:
            self.stream_closed = True

    async def request_image_generation(self, prompt, options):
        self.prompts.append(prompt)
        return Completion(result=[CompletionResult.image("aGVsbG8gd29ybGQ=")])

    async def can_stream(self, options):
        return self.streamable

    async def list_models(self, params=None):
        return []

    async def validate_connection(self):
        return True

    async def generate_embeddings(self, options):
        return EmbeddingsResult(values=[0.1, 0.2], model="fake-embed")


@pytest.fixture
def make_driver():
    """Factory building a FakeDriver with the given canned behavior."""
    return FakeDriver
