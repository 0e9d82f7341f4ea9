"""
Unit tests for qq_bot.config - env file loading and settings objects.
"""

import os
import tempfile
from unittest.mock import patch

import pytest

from qq_bot.config import (
    DEFAULT_ONEBOT_TIMEOUT,
    MAX_VISION_IMAGE_BYTES,
    VISION_IMAGE_TIMEOUT,
    OneBotConfig,
    VisionConfig,
    load_env_file,
)
from qq_bot.segments import file_segment, video_segment


@pytest.mark.unit
class TestLoadEnvFile:
    """KEY=value parsing."""

    def test_parses_plain_export_and_quoted_lines(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\n"
            "\n"
            "QQ_TEST_PLAIN=one\n"
            'export QQ_TEST_QUOTED="two words"\n'
            "QQ_TEST_SINGLE='three'\n"
            "QQ_TEST_SECRET=ENC[AES256_GCM,data:abc]\n"
            "not a pair\n"
        )

        with patch.dict(os.environ, {}, clear=False):
            loaded = load_env_file(env_file)

            assert loaded == {
                "QQ_TEST_PLAIN": "one",
                "QQ_TEST_QUOTED": "two words",
                "QQ_TEST_SINGLE": "three",
            }
            assert os.environ["QQ_TEST_QUOTED"] == "two words"
            assert "QQ_TEST_SECRET" not in os.environ

    def test_existing_environment_wins(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("QQ_TEST_PRESET=from-file\n")

        with patch.dict(os.environ, {"QQ_TEST_PRESET": "from-env"}):
            loaded = load_env_file(env_file)
            assert loaded == {}
            assert os.environ["QQ_TEST_PRESET"] == "from-env"

    def test_missing_file_returns_empty(self, tmp_path):
        assert load_env_file(tmp_path / "absent.env") == {}


@pytest.mark.unit
class TestOneBotConfig:
    """OneBotConfig.from_env()."""

    def test_defaults(self, clean_onebot_env):
        config = OneBotConfig.from_env()
        assert config.ws_url is None
        assert config.access_token == ""
        assert config.timeout == DEFAULT_ONEBOT_TIMEOUT

    def test_reads_environment(self, clean_onebot_env):
        clean_onebot_env.setenv("ONEBOT_WS_URL", "ws://127.0.0.1:3001")
        clean_onebot_env.setenv("ONEBOT_ACCESS_TOKEN", "tok")
        clean_onebot_env.setenv("ONEBOT_TIMEOUT", "7.5")

        config = OneBotConfig.from_env()

        assert config.ws_url == "ws://127.0.0.1:3001"
        assert config.access_token == "tok"
        assert config.timeout == 7.5

    @pytest.mark.parametrize("raw", ["soon", "0", "-3"])
    def test_invalid_timeout_falls_back(self, clean_onebot_env, raw):
        clean_onebot_env.setenv("ONEBOT_TIMEOUT", raw)
        assert OneBotConfig.from_env().timeout == DEFAULT_ONEBOT_TIMEOUT


@pytest.mark.unit
class TestVisionConfig:
    """VisionConfig defaults and environment overrides."""

    def test_defaults(self, clean_onebot_env):
        config = VisionConfig.from_env()
        assert config.max_bytes == MAX_VISION_IMAGE_BYTES == 10 * 1024 * 1024
        assert config.timeout == VISION_IMAGE_TIMEOUT
        assert config.tmp_dir == tempfile.gettempdir()
        assert config.tmp_prefix == "qq_vision_"
        assert config.user_agent == "Mozilla/5.0 (OpenClaw QQ)"
        assert config.max_count == 3

    def test_reads_environment(self, clean_onebot_env, tmp_path):
        clean_onebot_env.setenv("QQ_VISION_MAX_BYTES", "2048")
        clean_onebot_env.setenv("QQ_VISION_TIMEOUT", "3")
        clean_onebot_env.setenv("QQ_VISION_TMP_DIR", str(tmp_path))

        config = VisionConfig.from_env()

        assert config.max_bytes == 2048
        assert config.timeout == 3.0
        assert config.tmp_dir == str(tmp_path)

    def test_invalid_max_bytes_falls_back(self, clean_onebot_env, caplog):
        clean_onebot_env.setenv("QQ_VISION_MAX_BYTES", "10MB")
        with caplog.at_level("WARNING", logger="qq_bot.config"):
            config = VisionConfig.from_env()
        assert config.max_bytes == MAX_VISION_IMAGE_BYTES
        assert "QQ_VISION_MAX_BYTES" in caplog.text


@pytest.mark.unit
class TestSegments:
    """OneBot media segment builders."""

    def test_video_segment(self):
        assert video_segment("/media/a.mp4") == {
            "type": "video",
            "data": {"file": "/media/a.mp4"},
        }

    def test_file_segment_with_name(self):
        assert file_segment("/media/a.txt", "a.txt") == {
            "type": "file",
            "data": {"file": "/media/a.txt", "name": "a.txt"},
        }

    def test_file_segment_without_name(self):
        assert file_segment("/media/a.txt") == {"type": "file", "data": {"file": "/media/a.txt"}}
