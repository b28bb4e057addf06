"""docpilot — action extraction, validation, incremental mutation and undo."""

from docpilot.config import CONFIG, AppConfig, EngineConfig, __version__
from docpilot.action_store import ActionStore
from docpilot.executor import MutationExecutor
from docpilot.tree_builder import BuildStepError, IncrementalTreeBuilder
from docpilot.undo import UndoManager
from docpilot.pipeline import ActionPipeline, format_query_followup
from docpilot.adapters.store.memory_store import InMemoryDocumentStore
from docpilot.adapters.store.http_store import HttpDocumentStore
from docpilot.adapters.design.frame_client import FrameClient

__all__ = [
    "CONFIG",
    "AppConfig",
    "EngineConfig",
    "__version__",
    "ActionStore",
    "MutationExecutor",
    "BuildStepError",
    "IncrementalTreeBuilder",
    "UndoManager",
    "ActionPipeline",
    "format_query_followup",
    "InMemoryDocumentStore",
    "HttpDocumentStore",
    "FrameClient",
]
