"""IncrementalTreeBuilder — shell-then-fill page construction.

The store rejects writes whose literal is nested too deeply, so a page is
never written in one call. Instead:

1. create the page with an empty section list
2. append each section as an empty shell
3. append row shells to the section, then column shells to each row
4. append content blocks to each column, a few per write

Parents are addressed by ``_key`` selectors. Steps run strictly in order; the
first failure stops the build and leaves the partial document in place.
"""

import sys
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional

from docpilot.domain.models import ActionResult
from docpilot.domain.paths import key_path
from docpilot.domain.tree import (
    SECTIONS_FIELD,
    ColumnSpec,
    PageSpec,
    RowSpec,
    SectionSpec,
    column_shell,
    page_shell,
    prepare_block,
    row_shell,
    section_shell,
)
from docpilot.ports.outbound import Document, DocumentStorePort


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] [tree] {msg}", file=sys.stderr)


class BuildStepError(Exception):
    """A single builder step failed; carries the step label and partial document."""

    def __init__(self, step: str, document_id: Optional[str], cause: Exception):
        super().__init__(f"{step}: {cause}")
        self.step = step
        self.document_id = document_id
        self.cause = cause


class IncrementalTreeBuilder:
    def __init__(self, store: DocumentStorePort, batch_size: int = 5):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.steps_taken = 0

    async def _step(self, label: str, document_id: Optional[str], write: Awaitable[Document]) -> Document:
        try:
            result = await write
        except Exception as e:
            _log(f"step failed ({label}): {e}")
            raise BuildStepError(label, document_id, e) from e
        self.steps_taken += 1
        _log(f"ok: {label}")
        return result

    async def _append(self, document_id: str, label: str, path: str, items: List[Dict[str, Any]]) -> None:
        write = self.store.patch(document_id).set_if_missing({path: []}).append(path, items).commit()
        await self._step(label, document_id, write)

    # -- public --

    async def build_tree(self, spec: PageSpec) -> ActionResult:
        """Create a page and fill it level by level."""
        self.steps_taken = 0
        document_id: Optional[str] = None
        try:
            page = await self._step("create page", None, self.store.create(page_shell(spec)))
            document_id = page["_id"]
            for number, section in enumerate(spec.sections, start=1):
                await self._fill_section(document_id, section, str(number))
        except BuildStepError as e:
            return self._failure(e)
        return ActionResult(
            success=True,
            document_id=document_id,
            message=(
                f"Created page {spec.title!r} with {len(spec.sections)} section(s) "
                f"in {self.steps_taken} step(s)"
            ),
            data={"documentId": document_id, "sections": len(spec.sections), "steps": self.steps_taken},
        )

    async def append_section(self, document_id: str, spec: SectionSpec) -> ActionResult:
        """Add a section to the end of an existing page."""
        self.steps_taken = 0
        try:
            page = await self.store.get_document(document_id)
        except Exception as e:
            return ActionResult(success=False, document_id=document_id, message=f"Failed to read page: {e}")
        if page is None:
            return ActionResult(success=False, message=f"Document {document_id} not found")
        index = len(page.get(SECTIONS_FIELD) or [])
        try:
            section_key = await self._fill_section(document_id, spec, str(index + 1))
        except BuildStepError as e:
            return self._failure(e)
        return ActionResult(
            success=True,
            document_id=document_id,
            message=f"Appended section at index {index} in {self.steps_taken} step(s)",
            data={"sectionKey": section_key, "index": index},
        )

    async def append_content(
        self,
        document_id: str,
        section_key: str,
        row_key: str,
        column_key: str,
        blocks: List[Dict[str, Any]],
    ) -> ActionResult:
        """Append content blocks to an existing column, in batches."""
        self.steps_taken = 0
        path = key_path(SECTIONS_FIELD, section_key, "rows", row_key, "columns", column_key, "content")
        try:
            await self._fill_content(document_id, path, blocks, column_key)
        except BuildStepError as e:
            return self._failure(e)
        return ActionResult(
            success=True,
            document_id=document_id,
            message=f"Appended {len(blocks)} content block(s) in {self.steps_taken} step(s)",
        )

    # -- internals --

    async def _fill_section(self, document_id: str, spec: SectionSpec, label: str) -> str:
        shell = section_shell(spec)
        await self._append(document_id, f"append section {label}", SECTIONS_FIELD, [shell])
        for number, row in enumerate(spec.rows, start=1):
            await self._fill_row(document_id, shell["_key"], row, f"{label}.{number}")
        return shell["_key"]

    async def _fill_row(self, document_id: str, section_key: str, spec: RowSpec, label: str) -> None:
        shell = row_shell(spec)
        rows_path = key_path(SECTIONS_FIELD, section_key, "rows")
        await self._append(document_id, f"append row {label}", rows_path, [shell])
        for number, column in enumerate(spec.columns, start=1):
            await self._fill_column(document_id, section_key, shell["_key"], column, f"{label}.{number}")

    async def _fill_column(
        self,
        document_id: str,
        section_key: str,
        row_key: str,
        spec: ColumnSpec,
        label: str,
    ) -> None:
        shell = column_shell(spec)
        columns_path = key_path(SECTIONS_FIELD, section_key, "rows", row_key, "columns")
        await self._append(document_id, f"append column {label}", columns_path, [shell])
        content_path = key_path(
            SECTIONS_FIELD, section_key, "rows", row_key, "columns", shell["_key"], "content"
        )
        await self._fill_content(document_id, content_path, spec.content, label)

    async def _fill_content(self, document_id: str, path: str, blocks: List[Dict[str, Any]], label: str) -> None:
        for start in range(0, len(blocks), self.batch_size):
            batch = [prepare_block(b) for b in blocks[start:start + self.batch_size]]
            batch_number = start // self.batch_size + 1
            await self._append(document_id, f"append content {label} batch {batch_number}", path, batch)

    def _failure(self, error: BuildStepError) -> ActionResult:
        if error.document_id:
            message = (
                f"Build failed at step '{error.step}': {error.cause}. "
                f"Partially built document {error.document_id} was left in place; "
                "inspect it or delete it."
            )
        else:
            message = f"Build failed at step '{error.step}': {error.cause}"
        return ActionResult(
            success=False,
            document_id=error.document_id,
            message=message,
            data={"failedStep": error.step, "stepsCompleted": self.steps_taken},
        )
