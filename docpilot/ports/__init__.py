"""Port interfaces (Hexagonal Architecture)."""

from docpilot.ports.outbound import (
    DesignToolPort,
    DocumentStoreError,
    DocumentStorePort,
    FrameResult,
    Patch,
)

__all__ = [
    "DesignToolPort",
    "DocumentStoreError",
    "DocumentStorePort",
    "FrameResult",
    "Patch",
]
