"""Design tool adapter."""

from docpilot.adapters.design.frame_client import FrameClient, parse_frame_url

__all__ = ["FrameClient", "parse_frame_url"]
