"""Events passed between the chunking service and the chunk-link builder.

Handlers run in the emitting task, in subscription order. A failing handler
is logged and never breaks the emitter.
"""

import logging
import uuid
from collections import defaultdict
from enum import Enum
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from ._util import now_iso

log = logging.getLogger("ontomem")


class EventType(str, Enum):
    memory_created = "memory_created"
    chunking_started = "chunking_started"
    chunk_created = "chunk_created"
    chunking_complete = "chunking_complete"
    chunking_failed = "chunking_failed"
    link_created = "link_created"
    linking_complete = "linking_complete"


class Event(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = Field(default_factory=now_iso)
    correlation_id: str | None = None

    event_type: EventType


class MemoryCreated(Event):
    event_type: EventType = EventType.memory_created
    memory_id: str
    internal_id: str
    content: str
    needs_chunking: bool
    user_id: str


class ChunkingStarted(Event):
    event_type: EventType = EventType.chunking_started
    memory_id: str
    estimated_chunks: int
    strategy: str


class ChunkCreated(Event):
    event_type: EventType = EventType.chunk_created
    chunk_id: str
    chunk_internal_id: str
    parent_memory_id: str
    parent_internal_id: str
    position: int
    content: str
    token_count: int
    total_chunks: int


class ChunkingComplete(Event):
    event_type: EventType = EventType.chunking_complete
    memory_id: str
    chunks_created: int
    links_created: int
    duration_ms: float
    success: bool


class ChunkingFailed(Event):
    event_type: EventType = EventType.chunking_failed
    memory_id: str
    error: str
    stage: str


class LinkCreated(Event):
    event_type: EventType = EventType.link_created
    from_chunk_id: str
    to_chunk_id: str
    edge_type: str = "NEXT_CHUNK"
    edge_id: str | None = None


class LinkingComplete(Event):
    event_type: EventType = EventType.linking_complete
    memory_id: str
    edges_created: int
    errors: int
    duration_ms: float


Handler = Callable[[Event], Awaitable[None]]


class EventBus:
    def __init__(self):
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)
        self.emitted = 0

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: Event) -> None:
        self.emitted += 1
        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                await handler(event)
            except Exception as e:
                log.warning("handler for %s failed: %s", event.event_type.value, e)

    def handler_count(self, event_type: EventType) -> int:
        return len(self._handlers.get(event_type, []))
