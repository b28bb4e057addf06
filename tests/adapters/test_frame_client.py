"""Unit tests for the design tool FrameClient."""

import pytest
from unittest.mock import patch

from docpilot.adapters.design.frame_client import (
    FrameClient,
    collect_image_refs,
    parse_frame_url,
    simplify_node,
)
from docpilot.config import DesignToolConfig
from docpilot.ports.outbound import DesignToolPort


@pytest.fixture
def client():
    return FrameClient(DesignToolConfig(api_url="https://design.test/v1", token="figtok"))


def _mock_aiohttp_session(responses, calls):
    """responses: list of (status, body) consumed in order by get() calls."""
    call_idx = 0

    class FakeResponse:
        def __init__(self, status, data):
            self.status = status
            self._data = data

        async def json(self, content_type=None):
            return self._data

        async def read(self):
            return self._data

        async def __aenter__(self):
            return self

        async def __aexit__(self, *args):
            pass

    class FakeSession:
        def __init__(self, headers=None):
            self._headers = headers or {}

        def get(self, url, params=None):
            nonlocal call_idx
            calls.append((url, params, self._headers))
            status, data = responses[call_idx]
            call_idx += 1
            return FakeResponse(status, data)

        async def __aenter__(self):
            return self

        async def __aexit__(self, *args):
            pass

    return FakeSession


FRAME_DOCUMENT = {
    "id": "1:2",
    "name": "Hero",
    "type": "FRAME",
    "layoutMode": "VERTICAL",
    "itemSpacing": 16,
    "absoluteBoundingBox": {"x": 0, "y": 0, "width": 1440, "height": 600},
    "fills": [{"type": "IMAGE", "imageRef": "img1"}],
    "children": [
        {"id": "1:3", "name": "Title", "type": "TEXT", "characters": "Welcome",
         "style": {"fontSize": 48, "fontFamily": "Inter"}},
        {"id": "1:4", "name": "Logo", "type": "VECTOR"},
    ],
}


class TestParseFrameUrl:
    def test_design_url(self):
        url = "https://www.figma.com/design/AbC123/My-File?node-id=12-34&t=x"
        assert parse_frame_url(url) == ("AbC123", "12:34")

    def test_file_url(self):
        assert parse_frame_url("https://www.figma.com/file/XyZ/Name?node-id=1%3A2") == ("XyZ", "1:2")

    def test_missing_node(self):
        assert parse_frame_url("https://www.figma.com/design/AbC123/My-File") is None

    def test_resolve_prefers_explicit_ids(self):
        assert FrameClient.resolve(file_key="K", node_id="5-6") == ("K", "5:6")

    def test_resolve_error(self):
        with pytest.raises(ValueError):
            FrameClient.resolve(frame_url="https://example.com")


class TestSimplify:
    def test_keeps_text_and_layout(self):
        node = simplify_node(FRAME_DOCUMENT)
        assert node["layoutMode"] == "VERTICAL"
        assert node["itemSpacing"] == 16
        title = node["children"][0]
        assert title["characters"] == "Welcome"
        assert title["style"] == {"fontSize": 48}

    def test_image_refs(self):
        refs = collect_image_refs(FRAME_DOCUMENT)
        assert [(r["nodeId"], r["type"]) for r in refs] == [("1:2", "fill"), ("1:4", "export")]


class TestFetchFrame:
    def test_implements_port(self, client):
        assert isinstance(client, DesignToolPort)

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        result = await FrameClient(DesignToolConfig()).fetch_frame(file_key="K", node_id="1:2")
        assert result.success is False
        assert "not configured" in result.message

    @pytest.mark.asyncio
    async def test_success(self, client):
        calls = []
        session = _mock_aiohttp_session([(200, {"nodes": {"1:2": {"document": FRAME_DOCUMENT}}})], calls)
        with patch("docpilot.adapters.design.frame_client.aiohttp.ClientSession", session):
            result = await client.fetch_frame(frame_url="https://www.figma.com/design/K/F?node-id=1-2")
        assert result.success is True
        assert result.data["fileKey"] == "K"
        assert result.data["frame"]["name"] == "Hero"
        assert "3 nodes" in result.message
        url, params, headers = calls[0]
        assert url == "https://design.test/v1/files/K/nodes"
        assert params == {"ids": "1:2"}
        assert headers == {"X-Figma-Token": "figtok"}

    @pytest.mark.asyncio
    async def test_missing_node(self, client):
        session = _mock_aiohttp_session([(200, {"nodes": {}})], [])
        with patch("docpilot.adapters.design.frame_client.aiohttp.ClientSession", session):
            result = await client.fetch_frame(file_key="K", node_id="9:9")
        assert result.success is False
        assert "not found" in result.message

    @pytest.mark.asyncio
    async def test_api_error(self, client):
        session = _mock_aiohttp_session([(403, {"status": 403, "err": "Invalid token"})], [])
        with patch("docpilot.adapters.design.frame_client.aiohttp.ClientSession", session):
            result = await client.fetch_frame(file_key="K", node_id="1:2")
        assert result.success is False
        assert "Invalid token" in result.message


class TestExportImage:
    @pytest.mark.asyncio
    async def test_downloads_rendered_image(self, client):
        calls = []
        session = _mock_aiohttp_session([
            (200, {"images": {"1:2": "https://cdn.test/render.png"}}),
            (200, b"\x89PNG"),
        ], calls)
        with patch("docpilot.adapters.design.frame_client.aiohttp.ClientSession", session):
            data = await client.export_image(file_key="K", node_id="1:2")
        assert data == b"\x89PNG"
        assert calls[0][1] == {"ids": "1:2", "scale": "2", "format": "png"}
        assert calls[1][0] == "https://cdn.test/render.png"

    @pytest.mark.asyncio
    async def test_no_render(self, client):
        session = _mock_aiohttp_session([(200, {"images": {"1:2": None}})], [])
        with patch("docpilot.adapters.design.frame_client.aiohttp.ClientSession", session):
            with pytest.raises(RuntimeError):
                await client.export_image(file_key="K", node_id="1:2")
