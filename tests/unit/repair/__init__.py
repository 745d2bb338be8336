"""Scripted providers and small schemas shared by repair-layer tests."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field

from coursegen_repair.providers.base import ProviderRegistry, ProviderRequest, ProviderResponse
from coursegen_repair.schema.descriptor import NUMBER, STRING, object_schema

TITLE_COUNT = object_schema({"title": STRING, "count": NUMBER})
ENVELOPED = '{"parameter":"{\\"title\\":\\"X\\",\\"count\\":3}"}'


def text_response(text: str, *, model: str = "claude-haiku-4-5-20251001") -> ProviderResponse:
    return ProviderResponse(model=model, raw_text=text)


@dataclass(slots=True)
class ScriptedProvider:
    """Provider double replaying queued responses or raising queued exceptions."""

    script: deque[ProviderResponse | BaseException] = field(default_factory=deque)
    requests: list[ProviderRequest] = field(default_factory=list)
    delay_seconds: float = 0.0

    @classmethod
    def replying(cls, *texts: str, delay_seconds: float = 0.0) -> ScriptedProvider:
        return cls(
            script=deque(text_response(text) for text in texts),
            delay_seconds=delay_seconds,
        )

    async def send(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        item = self.script.popleft()
        if isinstance(item, BaseException):
            raise item
        return item


def registry_with(name: str, provider: ScriptedProvider) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(name, lambda: provider)
    return registry
