"""
OneBot message segment builders for media messages.
"""

from typing import Any, Dict, Optional


def video_segment(file: str) -> Dict[str, Any]:
    """Video segment; file is a path or URL the OneBot server can read."""
    return {"type": "video", "data": {"file": file}}


def file_segment(file: str, name: Optional[str] = None) -> Dict[str, Any]:
    """File segment, with an optional display name."""
    data = {"file": file}
    if name:
        data["name"] = name
    return {"type": "file", "data": data}
