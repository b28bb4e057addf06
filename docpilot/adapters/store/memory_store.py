"""In-memory document store — implements DocumentStorePort.

Applies patches with the same key-path semantics as the HTTP backend and
rejects any single write whose literal is nested deeper than
``max_nesting_depth``. Used for dry runs, local development and tests.
"""

import copy
import hashlib
import re
import uuid
from typing import Any, Callable, Dict, List, Optional

from docpilot.domain import paths
from docpilot.ports.outbound import Document, DocumentStoreError, Operation, Patch

_TYPE_FILTER_RE = re.compile(r"_type\s*==\s*[\"']([\w.-]+)[\"']")
_ID_FILTER_RE = re.compile(r"_id\s*==\s*[\"']([^\"']+)[\"']")
_FIRST_RE = re.compile(r"\]\s*\[\s*0\s*\]")

QueryHandler = Callable[[List[Document], str, Dict[str, Any]], Any]


def default_query_handler(docs: List[Document], query: str, params: Dict[str, Any]) -> Any:
    """Tiny filter subset: ``_type == "x"``, ``_id == "x"``/``$id``, ``$type`` and ``[0]``."""
    results = docs
    type_match = _TYPE_FILTER_RE.search(query)
    doc_type = type_match.group(1) if type_match else None
    if doc_type is None and "$type" in query:
        doc_type = params.get("type")
    if doc_type:
        results = [d for d in results if d.get("_type") == doc_type]
    id_match = _ID_FILTER_RE.search(query)
    doc_id = id_match.group(1) if id_match else None
    if doc_id is None and "$id" in query:
        doc_id = params.get("id")
    if doc_id:
        results = [d for d in results if d.get("_id") in (doc_id, f"drafts.{doc_id}")]
    if _FIRST_RE.search(query):
        return results[0] if results else None
    limit = params.get("limit")
    if isinstance(limit, int):
        results = results[:limit]
    return results


class InMemoryDocumentStore:
    """Dict-backed store implementing DocumentStorePort protocol."""

    def __init__(
        self,
        max_nesting_depth: int = 12,
        query_handler: Optional[QueryHandler] = None,
    ):
        self.max_nesting_depth = max_nesting_depth
        self._query_handler = query_handler or default_query_handler
        self._docs: Dict[str, Document] = {}
        self.write_count = 0

    @property
    def is_configured(self) -> bool:
        return True

    def _check_depth(self, value: Any, what: str) -> None:
        depth = paths.nesting_depth(value)
        if depth > self.max_nesting_depth:
            raise DocumentStoreError(
                f"{what} is nested {depth} levels deep; maximum is {self.max_nesting_depth}",
                status=400,
            )

    def _store(self, doc: Document) -> Document:
        self._docs[doc["_id"]] = copy.deepcopy(doc)
        self.write_count += 1
        return copy.deepcopy(doc)

    async def create(self, doc: Document) -> Document:
        self._check_depth(doc, "Document")
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", uuid.uuid4().hex)
        if doc["_id"] in self._docs:
            raise DocumentStoreError(f"Document {doc['_id']} already exists", status=409)
        return self._store(doc)

    async def create_or_replace(self, doc: Document) -> Document:
        if not doc.get("_id"):
            raise DocumentStoreError("createOrReplace requires _id", status=400)
        self._check_depth(doc, "Document")
        return self._store(copy.deepcopy(doc))

    def patch(self, document_id: str) -> Patch:
        return Patch(document_id, self._commit)

    async def _commit(self, document_id: str, operations: List[Operation]) -> Document:
        if document_id not in self._docs:
            raise DocumentStoreError(f"Document {document_id} not found", status=404)
        doc = copy.deepcopy(self._docs[document_id])
        try:
            for op, arg in operations:
                if op == "set":
                    for path, value in arg.items():
                        self._check_depth(value, f"Value for {path}")
                        paths.set_at(doc, path, value)
                elif op == "setIfMissing":
                    for path, value in arg.items():
                        self._check_depth(value, f"Value for {path}")
                        paths.set_if_missing(doc, path, value)
                elif op == "unset":
                    for path in arg:
                        paths.unset_at(doc, path)
                elif op == "append":
                    path, items = arg
                    self._check_depth(items, f"Items for {path}")
                    paths.append_at(doc, path, items)
                else:
                    raise DocumentStoreError(f"Unknown patch operation {op!r}", status=400)
        except paths.FieldPathError as e:
            raise DocumentStoreError(str(e), status=400) from e
        return self._store(doc)

    async def delete(self, document_id: str) -> None:
        if self._docs.pop(document_id, None) is None:
            raise DocumentStoreError(f"Document {document_id} not found", status=404)
        self.write_count += 1

    async def fetch(self, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
        docs = [copy.deepcopy(d) for d in self._docs.values()]
        return self._query_handler(docs, query, params or {})

    async def get_document(self, document_id: str) -> Optional[Document]:
        doc = self._docs.get(document_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def upload_asset(
        self,
        kind: str,
        data: bytes,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Document:
        meta = meta or {}
        digest = hashlib.sha1(data).hexdigest()
        asset = {
            "_id": f"{kind}-{digest[:24]}",
            "_type": f"{kind}Asset",
            "sha1hash": digest,
            "size": len(data),
            "originalFilename": meta.get("filename"),
            "mimeType": meta.get("mimeType"),
        }
        return self._store(asset)
