"""Document store HTTP client using aiohttp."""

import json
from typing import Any, Dict, List, Optional

import aiohttp

from docpilot.config import StoreConfig
from docpilot.domain import paths
from docpilot.ports.outbound import Document, DocumentStoreError, Operation, Patch


def _error_message(data: Any, status: int) -> str:
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("description") or error.get("message") or str(error)
        if isinstance(error, str):
            return data.get("message") or error
        if data.get("message"):
            return data["message"]
    return f"HTTP {status}: {data}"


def patch_mutations(document_id: str, operations: List[Operation]) -> List[Dict[str, Any]]:
    """Translate recorded Patch operations into backend mutations, in order."""
    mutations = []
    for op, arg in operations:
        if op == "append":
            path, items = arg
            body = {"insert": {"after": f"{path}[-1]", "items": items}}
        else:
            body = {op: arg}
        mutations.append({"patch": {"id": document_id, **body}})
    return mutations


def _mutation_literals(mutation: Dict[str, Any]):
    """Yield (label, value) for every literal a mutation writes."""
    for op in ("create", "createOrReplace"):
        if op in mutation:
            yield "Document", mutation[op]
    body = mutation.get("patch") or {}
    for op in ("set", "setIfMissing"):
        for path, value in (body.get(op) or {}).items():
            yield f"Value for {path}", value
    insert = body.get("insert")
    if insert:
        yield f"Items for {insert['after'][:-4]}", insert["items"]


def check_depth(mutations: List[Dict[str, Any]], max_depth: int) -> None:
    """Reject a batch locally when any written literal is nested too deep."""
    for mutation in mutations:
        for label, value in _mutation_literals(mutation):
            depth = paths.nesting_depth(value)
            if depth > max_depth:
                raise DocumentStoreError(
                    f"{label} is nested {depth} levels deep; maximum is {max_depth}",
                    status=400,
                )


class HttpDocumentStore:
    """Async document store client (mutate / query / doc / assets endpoints)."""

    def __init__(self, config: StoreConfig, max_nesting_depth: int = 12):
        self._config = config
        self.max_nesting_depth = max_nesting_depth

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    @property
    def _data_base(self) -> str:
        return f"{self._config.api_url}/data"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._config.token}"}

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_seconds)
        async with aiohttp.ClientSession(headers=self._headers(), timeout=timeout) as session:
            async with session.request(method, url, **kwargs) as resp:
                data = await resp.json(content_type=None)
                if resp.status >= 400:
                    raise DocumentStoreError(_error_message(data, resp.status), status=resp.status)
                return data

    async def _mutate(self, mutations: List[Dict[str, Any]]) -> Dict[str, Any]:
        check_depth(mutations, self.max_nesting_depth)
        url = f"{self._data_base}/mutate/{self._config.dataset}"
        params = {"returnIds": "true", "returnDocuments": "true", "visibility": "sync"}
        return await self._request("POST", url, params=params, json={"mutations": mutations})

    @staticmethod
    def _last_document(data: Dict[str, Any], fallback_id: Optional[str] = None) -> Document:
        results = data.get("results") or []
        for result in reversed(results):
            if isinstance(result.get("document"), dict):
                return result["document"]
        if results and results[-1].get("id"):
            return {"_id": results[-1]["id"]}
        if fallback_id:
            return {"_id": fallback_id}
        raise DocumentStoreError(f"Unexpected mutation response: {data}")

    async def create(self, doc: Document) -> Document:
        data = await self._mutate([{"create": doc}])
        return self._last_document(data, doc.get("_id"))

    async def create_or_replace(self, doc: Document) -> Document:
        data = await self._mutate([{"createOrReplace": doc}])
        return self._last_document(data, doc.get("_id"))

    def patch(self, document_id: str) -> Patch:
        return Patch(document_id, self._commit)

    async def _commit(self, document_id: str, operations: List[Operation]) -> Document:
        if not operations:
            raise DocumentStoreError("Patch has no operations")
        data = await self._mutate(patch_mutations(document_id, operations))
        return self._last_document(data, document_id)

    async def delete(self, document_id: str) -> None:
        await self._mutate([{"delete": {"id": document_id}}])

    async def fetch(self, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self._data_base}/query/{self._config.dataset}"
        query_params = {"query": query}
        for name, value in (params or {}).items():
            query_params[f"${name}"] = json.dumps(value)
        data = await self._request("GET", url, params=query_params)
        return data.get("result")

    async def get_document(self, document_id: str) -> Optional[Document]:
        url = f"{self._data_base}/doc/{self._config.dataset}/{document_id}"
        try:
            data = await self._request("GET", url)
        except DocumentStoreError as e:
            if e.status == 404:
                return None
            raise
        documents = data.get("documents") or []
        return documents[0] if documents else None

    async def upload_asset(
        self,
        kind: str,
        data: bytes,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Document:
        meta = meta or {}
        url = f"{self._config.api_url}/assets/{kind}s/{self._config.dataset}"
        params = {}
        if meta.get("filename"):
            params["filename"] = meta["filename"]
        headers = {"Content-Type": meta.get("mimeType") or "application/octet-stream"}
        result = await self._request("POST", url, params=params, data=data, headers=headers)
        document = result.get("document")
        if not isinstance(document, dict):
            raise DocumentStoreError(f"Unexpected asset response: {result}")
        return document
