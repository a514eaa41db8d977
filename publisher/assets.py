"""Upload locally referenced images and rewrite them in a serialized document tree.

Stages: discover references -> resolve files -> upload -> rewrite sources ->
attach dimensions to image nodes.
"""

import asyncio
import logging
from typing import Iterator
from urllib.parse import unquote

from .config import DEFAULT_DIMENSION_CONCURRENCY, UploadConfig
from .image_finder import find_local_images
from .image_utils import resolve_image_dimensions
from .uploader import UploadFilesOptions, upload_files
from .utils import is_local_path


logger = logging.getLogger(__name__)

IMAGE_NODE = 'image'
COMPONENT_NODE = 'x-component'


def _component_images(data: dict) -> Iterator[tuple[dict, str, bool]]:
    """Image properties of card / cards components."""
    properties = data.get('properties') or {}
    component = data.get('component')

    if component == 'card' and properties.get('image'):
        yield properties, 'image', False

    if component == 'cards':
        for child in properties.get('children') or []:
            child_properties = child.get('properties') or {}
            if child.get('component') == 'card' and child_properties.get('image'):
                yield child_properties, 'image', False


def iter_image_references(node: dict) -> Iterator[tuple[dict, str, bool]]:
    """Yield (holder, key, is_image_node) for every image reference under a node.

    holder[key] is the reference; is_image_node tells image nodes apart from
    card image properties.
    """
    node_type = node.get('type')
    if node_type == IMAGE_NODE and node.get('src'):
        yield node, 'src', True

    if node_type == COMPONENT_NODE:
        data = node.get('data') or {}
        yield from _component_images(data)
        for child in (data.get('properties') or {}).get('childNodes') or []:
            yield from iter_image_references(child)

    for child in node.get('children') or []:
        yield from iter_image_references(child)


def collect_local_image_sources(content: dict) -> list[str]:
    """Local (non-remote, non-data-URL) image references of a document."""
    return [
        holder[key]
        for holder, key, _ in iter_image_references(content['root'])
        if is_local_path(holder[key])
    ]


async def attach_dimensions(items: list, dimension_resolver=resolve_image_dimensions,
                            concurrency: int = DEFAULT_DIMENSION_CONCURRENCY):
    """Set width/height on image nodes. items: (node, source to measure) pairs."""
    semaphore = asyncio.Semaphore(concurrency)

    async def dimension(node: dict, source: str):
        if node.get('width') and node.get('height'):
            return
        async with semaphore:
            try:
                dimensions = await dimension_resolver(source)
            except Exception as e:
                logger.warning('Image dimension detection failed for %s: %s', source, e)
                return
        if dimensions:
            node['width'] = dimensions.width
            node['height'] = dimensions.height

    await asyncio.gather(*(dimension(node, source) for node, source in items))


async def process_images(content: dict, file_path: str, upload_config: UploadConfig,
                         uploader=upload_files,
                         dimension_resolver=resolve_image_dimensions) -> dict:
    """Run the image pipeline over a serialized tree, updating it in place.

    Documents without local image references are returned untouched. Errors
    during upload are logged and the partially updated tree is returned.
    """
    references = list(iter_image_references(content['root']))
    local_sources = [holder[key] for holder, key, _ in references if is_local_path(holder[key])]
    if not local_sources:
        return content

    search = find_local_images(
        local_sources,
        media_folder=upload_config.media_folder,
        markdown_file_path=file_path,
    )

    try:
        result = await uploader(UploadFilesOptions(
            app_url=upload_config.app_url,
            access_token=upload_config.access_token,
            file_paths=search.files,
            concurrency=upload_config.concurrency,
            cache_file_path=upload_config.cache_file_path,
        ))

        uploaded = {item.file_path: item.url for item in result.results if item.url}
        url_mapping = {
            src: uploaded[path]
            for src, path in search.found_paths.items()
            if path in uploaded
        }

        to_dimension = []
        for holder, key, is_image_node in references:
            src = holder[key]
            if not is_local_path(src):
                if is_image_node:
                    to_dimension.append((holder, src))
                continue

            uploaded_url = url_mapping.get(src)
            if not uploaded_url:
                logger.warning('No uploaded URL found for image: %s', unquote(src))
                continue

            holder[key] = uploaded_url
            if is_image_node:
                # Measure the local copy rather than fetching it back
                to_dimension.append((holder, search.found_paths[src]))

        await attach_dimensions(to_dimension, dimension_resolver)
    except Exception as e:
        logger.warning('Failed to upload images for %s: %s', file_path, e)

    return content
