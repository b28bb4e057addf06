"""Design tool client using aiohttp.

Fetches a frame's node tree (simplified for the LLM to map onto page blocks)
and exports rendered images for upload into the document store.
"""

import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import aiohttp

from docpilot.config import DesignToolConfig
from docpilot.ports.outbound import FrameResult

_FILE_PATH_RE = re.compile(r"/(?:design|file)/([A-Za-z0-9]+)")

_TEXT_STYLE_ATTRS = (
    "fontSize",
    "fontWeight",
    "textAlignHorizontal",
    "textAlignVertical",
    "letterSpacing",
    "lineHeightPx",
)
_LAYOUT_ATTRS = (
    "itemSpacing",
    "primaryAxisAlignItems",
    "counterAxisAlignItems",
    "paddingLeft",
    "paddingRight",
    "paddingTop",
    "paddingBottom",
)


def parse_frame_url(url: str) -> Optional[Tuple[str, str]]:
    """Return ``(file_key, node_id)`` from a share URL, or None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    m = _FILE_PATH_RE.search(parsed.path)
    node_ids = parse_qs(parsed.query).get("node-id")
    if not m or not node_ids:
        return None
    return m.group(1), node_ids[0].replace("-", ":")


def simplify_node(node: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": node.get("id"),
        "name": node.get("name"),
        "type": node.get("type"),
    }
    if node.get("type") == "INSTANCE" and node.get("componentId"):
        out["componentName"] = node.get("name")
    if node.get("type") == "TEXT":
        out["characters"] = node.get("characters")
        style = node.get("style")
        if isinstance(style, dict):
            out["style"] = {k: style.get(k) for k in _TEXT_STYLE_ATTRS if k in style}
    if node.get("layoutMode"):
        out["layoutMode"] = node["layoutMode"]
        for attr in _LAYOUT_ATTRS:
            if attr in node:
                out[attr] = node[attr]
    fills = node.get("fills")
    if isinstance(fills, list):
        out["fills"] = [
            {"type": f.get("type"), "imageRef": f.get("imageRef"), "color": f.get("color")}
            for f in fills
            if isinstance(f, dict)
        ]
    if node.get("absoluteBoundingBox"):
        out["absoluteBoundingBox"] = node["absoluteBoundingBox"]
    children = node.get("children")
    if isinstance(children, list):
        out["children"] = [simplify_node(c) for c in children if isinstance(c, dict)]
    return out


def collect_image_refs(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Image fills and vector-ish nodes worth exporting."""
    refs: List[Dict[str, Any]] = []
    for fill in node.get("fills") or []:
        if fill.get("type") == "IMAGE":
            refs.append({
                "nodeId": node.get("id"),
                "name": node.get("name"),
                "type": "fill",
                "imageRef": fill.get("imageRef"),
            })
    if node.get("type") in ("VECTOR", "BOOLEAN_OPERATION"):
        refs.append({"nodeId": node.get("id"), "name": node.get("name"), "type": "export"})
    for child in node.get("children") or []:
        refs.extend(collect_image_refs(child))
    return refs


def _count_nodes(node: Dict[str, Any]) -> int:
    return 1 + sum(_count_nodes(c) for c in node.get("children") or [])


class FrameClient:
    """Async design tool API client."""

    def __init__(self, config: DesignToolConfig):
        self._config = config

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    def _headers(self) -> Dict[str, str]:
        return {"X-Figma-Token": self._config.token}

    @staticmethod
    def resolve(
        frame_url: Optional[str] = None,
        file_key: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> Tuple[str, str]:
        if file_key and node_id:
            return file_key, node_id.replace("-", ":")
        parsed = parse_frame_url(frame_url or "")
        if parsed is None:
            raise ValueError(f"Cannot read file key and node id from {frame_url!r}")
        return parsed

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        async with aiohttp.ClientSession(headers=self._headers()) as session:
            async with session.get(url, params=params) as resp:
                data = await resp.json(content_type=None)
                if resp.status >= 400 or data.get("err") or data.get("error"):
                    raise RuntimeError(data.get("err") or data.get("message") or f"HTTP {resp.status}")
                return data

    async def fetch_frame(
        self,
        frame_url: Optional[str] = None,
        file_key: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> FrameResult:
        if not self.is_configured:
            return FrameResult(success=False, message="Design tool is not configured")
        try:
            file_key, node_id = self.resolve(frame_url, file_key, node_id)
            data = await self._get_json(
                f"{self._config.api_url}/files/{file_key}/nodes",
                params={"ids": node_id},
            )
            entry = (data.get("nodes") or {}).get(node_id) or {}
            document = entry.get("document")
            if not isinstance(document, dict):
                return FrameResult(success=False, message=f"Frame {node_id} not found in {file_key}")
            frame = simplify_node(document)
            return FrameResult(
                success=True,
                data={
                    "fileKey": file_key,
                    "nodeId": node_id,
                    "frame": frame,
                    "images": collect_image_refs(document),
                },
                message=f"Fetched frame {frame.get('name')!r} ({_count_nodes(document)} nodes)",
            )
        except Exception as e:
            return FrameResult(success=False, message=f"Failed to fetch frame: {e}")

    async def export_image(
        self,
        frame_url: Optional[str] = None,
        file_key: Optional[str] = None,
        node_id: Optional[str] = None,
        scale: int = 2,
        image_format: str = "png",
    ) -> bytes:
        if not self.is_configured:
            raise RuntimeError("Design tool is not configured")
        file_key, node_id = self.resolve(frame_url, file_key, node_id)
        data = await self._get_json(
            f"{self._config.api_url}/images/{file_key}",
            params={"ids": node_id, "scale": str(scale), "format": image_format},
        )
        image_url = (data.get("images") or {}).get(node_id)
        if not image_url:
            raise RuntimeError(f"No image rendered for node {node_id}")
        async with aiohttp.ClientSession() as session:
            async with session.get(image_url) as resp:
                if resp.status >= 400:
                    raise RuntimeError(f"Image download failed: HTTP {resp.status}")
                return await resp.read()
