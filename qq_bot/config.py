"""
Configuration for the OneBot client and the vision image helper.

Values come from the process environment. An optional env file
(KEY=value lines, as written by the deployment tooling) can be loaded
first; variables already present in the environment take precedence.
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


DEFAULT_ONEBOT_TIMEOUT = 25.0

MAX_VISION_IMAGE_BYTES = 10 * 1024 * 1024
MAX_VISION_IMAGE_COUNT = 3
VISION_IMAGE_TIMEOUT = 15.0
VISION_TMP_PREFIX = "qq_vision_"
VISION_USER_AGENT = "Mozilla/5.0 (OpenClaw QQ)"


def load_env_file(path: Union[str, Path]) -> Dict[str, str]:
    """Load KEY=value pairs from an env file into os.environ.

    Args:
        path: Path to the env file

    Returns:
        Dict of the keys that were actually set (not already in the environment)
    """
    env_path = Path(path)
    if not env_path.exists():
        logger.warning(f"Env file not found: {env_path}")
        return {}

    loaded = {}
    with open(env_path) as f:
        for line in f:
            line = line.strip()

            # Skip comments and empty lines
            if not line or line.startswith("#"):
                continue

            # Skip SOPS encrypted lines
            if "ENC[" in line:
                continue

            if "=" not in line:
                continue

            if line.startswith("export "):
                line = line[7:]

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")

            if key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    logger.info(f"Loaded {len(loaded)} variables from {env_path}")
    return loaded


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive, using default {default}")
        return default
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive, using default {default}")
        return default
    return value


@dataclass
class OneBotConfig:
    """Connection settings for the OneBot WebSocket endpoint."""

    ws_url: Optional[str] = None
    access_token: str = ""
    timeout: float = DEFAULT_ONEBOT_TIMEOUT

    @classmethod
    def from_env(cls) -> "OneBotConfig":
        return cls(
            ws_url=os.getenv("ONEBOT_WS_URL") or None,
            access_token=os.getenv("ONEBOT_ACCESS_TOKEN", ""),
            timeout=_env_float("ONEBOT_TIMEOUT", DEFAULT_ONEBOT_TIMEOUT),
        )


@dataclass
class VisionConfig:
    """Limits and locations used when materializing images for vision."""

    max_bytes: int = MAX_VISION_IMAGE_BYTES
    timeout: float = VISION_IMAGE_TIMEOUT
    tmp_dir: str = field(default_factory=tempfile.gettempdir)
    tmp_prefix: str = VISION_TMP_PREFIX
    user_agent: str = VISION_USER_AGENT
    max_count: int = MAX_VISION_IMAGE_COUNT

    @classmethod
    def from_env(cls) -> "VisionConfig":
        return cls(
            max_bytes=_env_int("QQ_VISION_MAX_BYTES", MAX_VISION_IMAGE_BYTES),
            timeout=_env_float("QQ_VISION_TIMEOUT", VISION_IMAGE_TIMEOUT),
            tmp_dir=os.getenv("QQ_VISION_TMP_DIR") or tempfile.gettempdir(),
        )
