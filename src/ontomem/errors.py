"""Exception hierarchy for the memory core.

Library code raises these; the MCP server and CLI turn them into text.
"""


class OmcError(Exception):
    """Base class for every error raised by ontomem."""


class ConfigError(OmcError):
    pass


class ValidationError(OmcError):
    pass


# ---- backing store ----

class StoreError(OmcError):
    pass


class ConnectionFailed(StoreError):
    pass


class QueryError(StoreError):
    pass


class NotFound(QueryError):
    """The store reported a logical miss. Never retried."""


class RetryExhausted(StoreError):
    def __init__(self, attempts: int, last_error: Exception | str):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"max retries exceeded ({attempts}): {last_error}")


class MissingInternalId(StoreError):
    def __init__(self, memory_id: str):
        self.memory_id = memory_id
        super().__init__(f"store returned no internal id for {memory_id}")


# ---- providers ----

class ProviderError(OmcError):
    pass


class LlmError(ProviderError):
    pass


class EmbeddingError(ProviderError):
    pass


class EmptyText(EmbeddingError):
    def __init__(self):
        super().__init__("cannot embed empty text")


class BothProvidersFailed(ProviderError):
    def __init__(self, primary: Exception | str, fallback: Exception | str):
        self.primary = primary
        self.fallback = fallback
        super().__init__(f"primary failed: {primary}; fallback failed: {fallback}")


# ---- chunking ----

class ChunkingError(OmcError):
    pass


class ContentTooShort(ChunkingError):
    pass


# ---- id resolution ----

class ResolutionError(OmcError):
    pass


class MemoryNotFound(ResolutionError):
    def __init__(self, memory_id: str):
        self.memory_id = memory_id
        super().__init__(f"memory not found: {memory_id}")


class InvalidMemoryId(ResolutionError):
    pass


class BatchFailure(ResolutionError):
    pass


class SingleFailure(BatchFailure):
    def __init__(self, memory_id: str, error: Exception | str):
        self.memory_id = memory_id
        self.error = error
        super().__init__(f"resolution of {memory_id} failed: {error}")


class PartialFailure(BatchFailure):
    def __init__(self, resolved: int, failed: int):
        self.resolved = resolved
        self.failed = failed
        super().__init__(f"{failed} of {resolved + failed} resolutions failed")


class TotalFailure(BatchFailure):
    def __init__(self, count: int):
        self.count = count
        super().__init__(f"all {count} resolutions failed")


# ---- deletion ----

class DeletionError(OmcError):
    pass


class AlreadyDeleted(DeletionError):
    def __init__(self, memory_id: str):
        self.memory_id = memory_id
        super().__init__(f"memory already deleted: {memory_id}")


class CannotRestore(DeletionError):
    def __init__(self, memory_id: str, reason: str = "hard deleted"):
        self.memory_id = memory_id
        super().__init__(f"cannot restore {memory_id}: {reason}")
