"""Outbound ports — interfaces for the document store and design tool."""

from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

Document = Dict[str, Any]
Operation = Tuple[str, Any]


class DocumentStoreError(Exception):
    """Backend or transport failure reported by a document-store adapter."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class Patch:
    """Chainable patch: ``await store.patch(id).set({...}).commit()``.

    Operations are applied in the order they were added, in one write.
    """

    def __init__(
        self,
        document_id: str,
        committer: Callable[[str, List[Operation]], Awaitable[Document]],
    ):
        self.document_id = document_id
        self.operations: List[Operation] = []
        self._committer = committer

    def set(self, values: Dict[str, Any]) -> "Patch":
        self.operations.append(("set", dict(values)))
        return self

    def set_if_missing(self, values: Dict[str, Any]) -> "Patch":
        self.operations.append(("setIfMissing", dict(values)))
        return self

    def unset(self, paths: List[str]) -> "Patch":
        self.operations.append(("unset", list(paths)))
        return self

    def append(self, path: str, items: List[Any]) -> "Patch":
        self.operations.append(("append", (path, list(items))))
        return self

    async def commit(self) -> Document:
        return await self._committer(self.document_id, list(self.operations))


@runtime_checkable
class DocumentStorePort(Protocol):
    """Interface for the content document store."""

    @property
    def is_configured(self) -> bool: ...

    async def create(self, doc: Document) -> Document: ...

    async def create_or_replace(self, doc: Document) -> Document: ...

    def patch(self, document_id: str) -> Patch: ...

    async def delete(self, document_id: str) -> None: ...

    async def fetch(self, query: str, params: Optional[Dict[str, Any]] = None) -> Any: ...

    async def get_document(self, document_id: str) -> Optional[Document]: ...

    async def upload_asset(
        self,
        kind: str,
        data: bytes,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Document: ...


@dataclass
class FrameResult:
    """Unified result type for design-tool calls."""

    success: bool
    data: Any = None
    message: str = ""


@runtime_checkable
class DesignToolPort(Protocol):
    """Interface for the external design tool (frame fetch and image export)."""

    @property
    def is_configured(self) -> bool: ...

    async def fetch_frame(
        self,
        frame_url: Optional[str] = None,
        file_key: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> FrameResult: ...

    async def export_image(
        self,
        frame_url: Optional[str] = None,
        file_key: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> bytes: ...
