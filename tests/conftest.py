"""
Shared pytest fixtures for the OneBot client and vision media tests.
"""

import sys
from pathlib import Path

# Add parent directory to path so we can import clients, qq_bot and tools
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from qq_bot.config import VisionConfig


# ============================================================================
# Vision Fixtures
# ============================================================================


@pytest.fixture
def vision_tmp_dir(tmp_path) -> Path:
    """Isolated temp directory for materialized images."""
    out = tmp_path / "vision_tmp"
    out.mkdir()
    return out


@pytest.fixture
def vision_config(vision_tmp_dir) -> VisionConfig:
    """
    Vision settings with a small size limit and short timeout.

    64-byte limit keeps oversized-payload tests cheap; 0.5s timeout keeps
    the hanging-server tests fast.
    """
    return VisionConfig(max_bytes=64, timeout=0.5, tmp_dir=str(vision_tmp_dir))


@pytest.fixture
def sample_image_file(tmp_path) -> Path:
    """Small local image file well under the limit."""
    path = tmp_path / "photo.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16)
    return path


# ============================================================================
# Media Fixtures
# ============================================================================


@pytest.fixture
def media_files(tmp_path):
    """An mp4 and a txt file for the repro script."""
    mp4 = tmp_path / "test.mp4"
    mp4.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    txt = tmp_path / "test.txt"
    txt.write_text("hello from repro\n")
    return str(mp4), str(txt)


@pytest.fixture
def clean_onebot_env(monkeypatch):
    """Remove OneBot and vision settings from the environment."""
    for var in (
        "ONEBOT_WS_URL",
        "ONEBOT_ACCESS_TOKEN",
        "ONEBOT_TIMEOUT",
        "QQ_VISION_MAX_BYTES",
        "QQ_VISION_TIMEOUT",
        "QQ_VISION_TMP_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch
