"""Resource types handled by the task registry, the runner and the web UI."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

BLOB_DISPLAY_NAME_ANNOTATION = "task.opencidn.daocloud.io/display-name"
CONDITION_TYPE_RETRYABLE = "Retryable"


class _Phase(str, Enum):
    def __str__(self) -> str:
        return self.value


class ChunkPhase(_Phase):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class BlobPhase(_Phase):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class BearerPhase(_Phase):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


@dataclass
class Condition:
    type: str
    message: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ObjectMeta:
    name: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    creation_timestamp: datetime = field(default_factory=_now)
    resource_version: str = ""


@dataclass
class ChunkHTTPRequest:
    method: str = ""
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ChunkHTTPResponse:
    status_code: int = 0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ChunkHTTP:
    request: ChunkHTTPRequest = field(default_factory=ChunkHTTPRequest)
    response: ChunkHTTPResponse = field(default_factory=ChunkHTTPResponse)


@dataclass
class ChunkSpec:
    source: ChunkHTTP = field(default_factory=ChunkHTTP)
    destination: list[ChunkHTTP] = field(default_factory=list)
    total: int = 0
    priority: int = 0
    inline_response_body: bool = False
    sha256: str = ""
    sha256_partial_previous_name: str = ""
    chunk_index: int = 0
    chunks_number: int = 0


@dataclass
class ChunkStatus:
    handler_name: str = ""
    phase: ChunkPhase | None = None
    conditions: list[Condition] = field(default_factory=list)
    source_response: ChunkHTTPResponse | None = None
    response_body: bytes = b""
    etags: list[str] = field(default_factory=list)
    sha256: str = ""
    sha256_partial: bytes = b""
    progress: int = 0
    source_progress: int = 0
    destination_progresses: list[int] = field(default_factory=list)
    retry: int = 0


@dataclass
class Chunk:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    spec: ChunkSpec = field(default_factory=ChunkSpec)
    status: ChunkStatus = field(default_factory=ChunkStatus)

    @property
    def name(self) -> str:
        return self.meta.name

    def deep_copy(self) -> Chunk:
        """Return an independent copy of the chunk."""
        return copy.deepcopy(self)


@dataclass
class BlobSource:
    url: str = ""
    bearer_name: str = ""


@dataclass
class BlobDestination:
    name: str = ""
    path: str = ""
    skip_if_exists: bool = False
    reverify_sha256: bool = False


@dataclass
class BlobSpec:
    source: list[BlobSource] = field(default_factory=list)
    destination: list[BlobDestination] = field(default_factory=list)
    priority: int = 0
    chunks_number: int = 0
    chunk_size: int = 0
    minimum_chunk_size: int = 0
    maximum_running: int = 0
    content_sha256: str = ""


@dataclass
class BlobStatus:
    handler_name: str = ""
    phase: BlobPhase | None = None
    total: int = 0
    progress: int = 0
    accept_ranges: bool = False
    pending_chunks: int = 0
    running_chunks: int = 0
    succeeded_chunks: int = 0
    failed_chunks: int = 0
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class Blob:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    spec: BlobSpec = field(default_factory=BlobSpec)
    status: BlobStatus = field(default_factory=BlobStatus)

    @property
    def name(self) -> str:
        return self.meta.name

    def deep_copy(self) -> Blob:
        """Return an independent copy of the blob."""
        return copy.deepcopy(self)


@dataclass
class BearerStatus:
    handler_name: str = ""
    phase: BearerPhase | None = None
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class Bearer:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    spec: dict = field(default_factory=dict)
    status: BearerStatus = field(default_factory=BearerStatus)

    @property
    def name(self) -> str:
        return self.meta.name

    def deep_copy(self) -> Bearer:
        """Return an independent copy of the bearer."""
        return copy.deepcopy(self)


@dataclass
class Multipart:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    spec: dict = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.meta.name


class ConflictError(Exception):
    """An update was based on an out-of-date version of an object."""


class NotFoundError(Exception):
    """The requested object does not exist."""


@dataclass(frozen=True)
class FieldError:
    """A single validation failure on a field path."""

    kind: str
    path: str
    detail: str

    @classmethod
    def required(cls, path: str, detail: str) -> FieldError:
        return cls("Required", path, detail)

    @classmethod
    def forbidden(cls, path: str, detail: str) -> FieldError:
        return cls("Forbidden", path, detail)

    def __str__(self) -> str:
        return f"{self.path}: {self.kind}: {self.detail}"