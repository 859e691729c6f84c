"""
Embeds image files as inline data URIs on cards.
"""

import base64
import logging
import mimetypes
from pathlib import Path

from flipdeck.exceptions import ImageError
from flipdeck.utils.formatting import format_size

log = logging.getLogger(__name__)

# Guidance only; larger images are accepted with a warning.
RECOMMENDED_MAX_BYTES = 10 * 1024 * 1024


def is_data_uri(value: str | None) -> bool:
    return bool(value) and value.startswith("data:")


def load_image_as_data_uri(path: Path) -> str:
    """
    Reads an image file and returns it as `data:<mime>;base64,<payload>`.

    Raises:
        ImageError: If the file is missing, unreadable, or not an image.
    """
    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        raise ImageError(f"'{path.name}' is not an image file.")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImageError(f"Could not read image '{path}': {e}") from e

    if len(data) > RECOMMENDED_MAX_BYTES:
        log.warning(
            f"[yellow]Image '{path.name}' is {format_size(len(data))}; images above "
            f"{format_size(RECOMMENDED_MAX_BYTES)} slow down sync.[/yellow]"
        )

    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
