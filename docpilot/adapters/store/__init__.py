"""Document store adapters — HTTP backend and in-memory store."""

from docpilot.adapters.store.http_store import HttpDocumentStore
from docpilot.adapters.store.memory_store import InMemoryDocumentStore

__all__ = ["HttpDocumentStore", "InMemoryDocumentStore"]
