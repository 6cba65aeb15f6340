"""Image and naming utilities for the ingestion pipeline."""

import posixpath
from collections.abc import Iterable, Mapping
from typing import Any, Dict, FrozenSet, List, Union

from PIL import ExifTags, Image

from .exceptions import ConfigurationError

# Embedded previews and vendor blobs that must not reach the catalog.
DEFAULT_STRIP_KEYS: FrozenSet[str] = frozenset(
    {
        "ThumbnailImage",
        "PreviewImage",
        "JpgFromRaw",
        "OtherImage",
        "PhotoshopThumbnail",
        "ThumbnailTIFF",
        "MakerNote",
        "PrintIM",
        "ICC_Profile",
        "XMLPacket",
    }
)

# Byte payloads larger than this are dropped instead of decoded.
MAX_INLINE_BYTES = 256

CONTENT_TYPES = {
    "webp": "image/webp",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "avif": "image/avif",
}


def parse_widths(value: Union[str, Iterable, None]) -> List[int]:
    """
    Parse candidate rendition widths.

    Args:
        value: Comma-separated string (``"200,400"``) or an iterable of
            ints/strings.

    Returns:
        Sorted, de-duplicated list of positive widths

    Raises:
        ConfigurationError: If a token is not an integer
    """
    if value is None:
        return []
    tokens = value.split(",") if isinstance(value, str) else list(value)

    widths = set()
    for token in tokens:
        if isinstance(token, str):
            token = token.strip()
            if not token:
                continue
        try:
            width = int(token)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid rendition width: {token!r}") from None
        if width > 0:
            widths.add(width)
    return sorted(widths)


def select_widths(candidates: Iterable[int], source_width: int) -> List[int]:
    """Widths strictly smaller than the source; renditions never upscale."""
    return sorted({w for w in candidates if 0 < w < source_width})


def rendition_key(object_path: str, width: int, extension: str = "webp") -> str:
    """
    Destination key of a rendition.

    ``photos/2024/cat.jpg`` at width 400 becomes ``photos/2024/cat_w400.webp``.
    """
    directory, filename = posixpath.split(object_path)
    stem, _ = posixpath.splitext(filename)
    new_name = f"{stem}_w{width}.{extension.lstrip('.')}"
    return f"{directory}/{new_name}" if directory else new_name


def archive_key(object_path: str, prefix: str = "original-") -> str:
    """Key under which the original is archived in the destination bucket."""
    return f"{prefix}{object_path}"


def content_type_for(extension: str) -> str:
    return CONTENT_TYPES.get(extension.lower().lstrip("."), "application/octet-stream")


def _json_safe(value: Any) -> Any:
    if isinstance(value, bytes):
        if len(value) > MAX_INLINE_BYTES:
            return None
        try:
            return value.decode("utf-8").rstrip("\x00")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (tuple, list)):
        return [_json_safe(v) for v in value]
    # IFDRational and friends
    try:
        return float(value)
    except (TypeError, ValueError):
        return str(value)


def extract_exif_data(img: "Image.Image") -> Dict[str, Any]:
    """
    Extract EXIF metadata from a PIL Image as a JSON-safe mapping.

    Args:
        img: PIL Image to extract EXIF from

    Returns:
        Dictionary with ``EXIF`` and ``GPS`` groups; empty groups are omitted
    """
    exif = img.getexif()
    groups: Dict[str, Dict[str, Any]] = {"EXIF": {}, "GPS": {}}

    for tag_id, value in exif.items():
        if tag_id in (ExifTags.IFD.Exif, ExifTags.IFD.GPSInfo):
            continue
        groups["EXIF"][str(ExifTags.TAGS.get(tag_id, tag_id))] = _json_safe(value)

    for tag_id, value in exif.get_ifd(ExifTags.IFD.Exif).items():
        groups["EXIF"][str(ExifTags.TAGS.get(tag_id, tag_id))] = _json_safe(value)

    for tag_id, value in exif.get_ifd(ExifTags.IFD.GPSInfo).items():
        groups["GPS"][str(ExifTags.GPSTAGS.get(tag_id, tag_id))] = _json_safe(value)

    return {name: values for name, values in groups.items() if values}


def strip_binary_fields(
    metadata: Mapping[str, Any], strip_keys: FrozenSet[str] = DEFAULT_STRIP_KEYS
) -> Dict[str, Any]:
    """
    Recursively drop embedded previews, thumbnails and raw binary payloads.

    Args:
        metadata: Extracted metadata mapping (possibly nested)
        strip_keys: Field names to remove wherever they appear

    Returns:
        A new mapping without the stripped fields
    """
    stripped: Dict[str, Any] = {}
    for key, value in metadata.items():
        if key in strip_keys or isinstance(value, (bytes, bytearray)):
            continue
        if isinstance(value, Mapping):
            stripped[key] = strip_binary_fields(value, strip_keys)
        elif isinstance(value, list):
            stripped[key] = [
                strip_binary_fields(v, strip_keys) if isinstance(v, Mapping) else v
                for v in value
                if not isinstance(v, (bytes, bytearray))
            ]
        else:
            stripped[key] = value
    return stripped
