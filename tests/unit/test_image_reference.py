"""
Unit tests for image reference classification.
"""

import pytest

from qq_bot.image_reference import ImageReference, ReferenceKind, parse_image_reference


@pytest.mark.unit
class TestParseImageReference:
    """Each prefix maps to exactly one branch."""

    def test_base64_reference(self):
        ref = parse_image_reference("base64://aGVsbG8=")
        assert ref.kind is ReferenceKind.EMBEDDED
        assert ref.value == "aGVsbG8="
        assert ref.raw == "base64://aGVsbG8="

    def test_empty_base64_body_is_still_embedded(self):
        ref = parse_image_reference("base64://")
        assert ref.kind is ReferenceKind.EMBEDDED
        assert ref.value == ""

    def test_file_scheme_is_percent_decoded(self):
        ref = parse_image_reference("file:///tmp/my%20photo.jpg")
        assert ref.kind is ReferenceKind.LOCAL_SCHEME
        assert ref.value == "/tmp/my photo.jpg"
        assert ref.is_local

    def test_empty_file_scheme_is_invalid(self):
        assert parse_image_reference("file://").kind is ReferenceKind.INVALID

    def test_absolute_path(self):
        ref = parse_image_reference("/data/images/cat.png")
        assert ref.kind is ReferenceKind.ABSOLUTE_PATH
        assert ref.value == "/data/images/cat.png"
        assert ref.is_local

    @pytest.mark.parametrize(
        "url", ["http://example.com/a.png", "https://cdn.example.com/img?id=1"]
    )
    def test_remote_urls(self, url):
        ref = parse_image_reference(url)
        assert ref.kind is ReferenceKind.REMOTE_URL
        assert ref.value == url
        assert not ref.is_local

    @pytest.mark.parametrize(
        "raw", ["", "ftp://example.com/a.png", "relative/path.jpg", "data:image/png;base64,AAAA"]
    )
    def test_invalid_references(self, raw):
        assert parse_image_reference(raw).kind is ReferenceKind.INVALID

    def test_none_is_invalid(self):
        assert parse_image_reference(None).kind is ReferenceKind.INVALID

    def test_reference_is_immutable(self):
        ref = parse_image_reference("/a.jpg")
        assert isinstance(ref, ImageReference)
        with pytest.raises(AttributeError):
            ref.value = "/b.jpg"
