"""
Image reference parsing.

QQ messages carry images as plain strings: an embedded base64 payload,
a file:// URL, an absolute path on the bot host, or an http(s) URL.
parse_image_reference() classifies the string once, before any I/O.
"""

from dataclasses import dataclass
from enum import Enum
from urllib.parse import unquote

BASE64_SCHEME = "base64://"
FILE_SCHEME = "file://"
REMOTE_SCHEMES = ("http://", "https://")


class ReferenceKind(Enum):
    """How an image reference should be resolved."""

    EMBEDDED = "embedded"
    LOCAL_SCHEME = "local_scheme"
    ABSOLUTE_PATH = "absolute_path"
    REMOTE_URL = "remote_url"
    INVALID = "invalid"


@dataclass(frozen=True)
class ImageReference:
    """A classified image reference.

    Attributes:
        kind: Resolution branch for this reference
        value: base64 body, local path (percent-decoded) or URL
        raw: The original reference string
    """

    kind: ReferenceKind
    value: str
    raw: str

    @property
    def is_local(self) -> bool:
        return self.kind in (ReferenceKind.LOCAL_SCHEME, ReferenceKind.ABSOLUTE_PATH)


def parse_image_reference(raw: str) -> ImageReference:
    """Classify an image reference string.

    Checked in priority order: base64://, file://, leading "/", then
    http:// or https://. Anything else (including empty input, other
    schemes and relative paths) is INVALID.

    Args:
        raw: Reference string from a message segment

    Returns:
        ImageReference with the kind and the branch-specific value
    """
    if not raw:
        return ImageReference(ReferenceKind.INVALID, "", raw or "")

    if raw.startswith(BASE64_SCHEME):
        return ImageReference(ReferenceKind.EMBEDDED, raw[len(BASE64_SCHEME):], raw)

    if raw.startswith(FILE_SCHEME):
        local_path = unquote(raw[len(FILE_SCHEME):])
        if not local_path:
            return ImageReference(ReferenceKind.INVALID, "", raw)
        return ImageReference(ReferenceKind.LOCAL_SCHEME, local_path, raw)

    if raw.startswith("/"):
        return ImageReference(ReferenceKind.ABSOLUTE_PATH, raw, raw)

    if raw.startswith(REMOTE_SCHEMES):
        return ImageReference(ReferenceKind.REMOTE_URL, raw, raw)

    return ImageReference(ReferenceKind.INVALID, raw, raw)
