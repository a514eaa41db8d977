"""Read image dimensions from local files and remote URLs."""

import asyncio
import io
import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

import requests
from bs4 import BeautifulSoup
from PIL import Image, ImageFile

from .utils import is_data_url, is_remote_url


logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10
PROBE_CHUNK_SIZE = 4096
PROBE_MAX_BYTES = 1024 * 1024  # give up on headers not found in the first MB
SVG_MAX_BYTES = 256 * 1024

SVG_LENGTH_RE = re.compile(r'^\s*([0-9]*\.?[0-9]+)\s*(?:px)?\s*$')


@dataclass(frozen=True)
class ImageDimensions:
    width: int
    height: int


def _is_svg(buffer: bytes) -> bool:
    head = buffer[:4096].lstrip().lower()
    return head.startswith(b'<') and b'<svg' in head


def _svg_length(value) -> Optional[float]:
    if not value:
        return None
    match = SVG_LENGTH_RE.match(str(value))
    return float(match.group(1)) if match else None


def _svg_dimensions(buffer: bytes) -> Optional[ImageDimensions]:
    """Dimensions from the width/height attributes, falling back to the viewBox."""
    soup = BeautifulSoup(buffer, 'xml')
    svg = soup.find('svg')
    if svg is None:
        return None

    width = _svg_length(svg.get('width'))
    height = _svg_length(svg.get('height'))

    if not (width and height):
        view_box = svg.get('viewBox') or svg.get('viewbox')
        parts = re.split(r'[\s,]+', view_box.strip()) if view_box else []
        if len(parts) == 4:
            try:
                box_width, box_height = float(parts[2]), float(parts[3])
            except ValueError:
                box_width = box_height = 0
            if box_width > 0 and box_height > 0:
                if width:
                    height = width * box_height / box_width
                elif height:
                    width = height * box_width / box_height
                else:
                    width, height = box_width, box_height

    if not (width and height):
        return None
    width, height = int(round(width)), int(round(height))
    if width <= 0 or height <= 0:
        return None
    return ImageDimensions(width, height)


def image_size(buffer: bytes) -> Optional[ImageDimensions]:
    """Inspect image headers. Returns None for unrecognized or corrupt data."""
    if not buffer:
        return None
    if _is_svg(buffer):
        return _svg_dimensions(buffer)
    try:
        with Image.open(io.BytesIO(buffer)) as img:
            width, height = img.size
    except (OSError, ValueError, Image.DecompressionBombError):
        return None
    if width > 0 and height > 0:
        return ImageDimensions(width, height)
    return None


def get_image_dimensions(path: str) -> Optional[ImageDimensions]:
    """Dimensions of an image file, or None if it is missing or unreadable."""
    if not path or not os.path.isfile(path):
        return None
    try:
        with open(path, 'rb') as f:
            buffer = f.read()
    except OSError as e:
        logger.warning('Local image dimension detection failed for %s: %s', path, e)
        return None
    return image_size(buffer)


def probe_remote_image(url: str, session: Optional[requests.Session] = None,
                       timeout: int = PROBE_TIMEOUT) -> ImageDimensions:
    """Fetch just enough of a remote image to read its dimensions.

    Raises on network errors and on data no header could be read from.
    """
    if url.startswith('//'):
        url = 'https:' + url
    http = session or requests

    dimensions = None
    with http.get(url, stream=True, timeout=timeout) as resp:
        resp.raise_for_status()
        content_type = resp.headers.get('content-type', '').lower()

        if 'svg' in content_type or url.lower().split('?')[0].endswith('.svg'):
            buffer = b''
            for chunk in resp.iter_content(chunk_size=PROBE_CHUNK_SIZE):
                buffer += chunk
                if len(buffer) >= SVG_MAX_BYTES:
                    break
            dimensions = image_size(buffer)
        else:
            parser = ImageFile.Parser()
            received = 0
            try:
                for chunk in resp.iter_content(chunk_size=PROBE_CHUNK_SIZE):
                    parser.feed(chunk)
                    received += len(chunk)
                    if parser.image is not None:
                        width, height = parser.image.size
                        dimensions = ImageDimensions(width, height)
                        break
                    if received >= PROBE_MAX_BYTES:
                        break
            finally:
                # only the header was read; close() complains about the rest
                try:
                    parser.close()
                except Exception as e:
                    logger.debug('Closing image parser for %s: %s', url, e)

    if dimensions is None:
        raise ValueError(f'Could not read image dimensions from {url}')
    return dimensions


async def resolve_image_dimensions(src: str) -> Optional[ImageDimensions]:
    """Dimensions for any image source; failures are logged and yield None."""
    if not src or is_data_url(src):
        return None

    if is_remote_url(src):
        try:
            return await asyncio.to_thread(probe_remote_image, src)
        except Exception as e:
            logger.warning('Remote image dimension detection failed for %s: %s', src, e)
            return None

    return await asyncio.to_thread(get_image_dimensions, src)
