"""Locate image files referenced from Markdown documents."""

import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote

from .utils import is_local_path


@dataclass
class ImageSearchResult:
    """Outcome of resolving a batch of image references."""
    found_paths: dict = field(default_factory=dict)  # reference -> absolute file path
    missing: list = field(default_factory=list)

    @property
    def files(self) -> list[str]:
        """Resolved files, deduplicated, in first-reference order."""
        return list(dict.fromkeys(self.found_paths.values()))


def _candidate_paths(src: str, media_folder: Optional[str], markdown_file_path: Optional[str]) -> list[str]:
    # Drop query strings/fragments and undo percent-encoding from the renderer
    path = unquote(src.split('#', 1)[0].split('?', 1)[0])
    markdown_dir = os.path.dirname(os.path.abspath(markdown_file_path)) if markdown_file_path else os.getcwd()
    media_dir = os.path.abspath(media_folder) if media_folder else None

    candidates = []
    if os.path.isabs(path):
        candidates.append(path)
        stripped = path.lstrip('/\\')
        if media_dir:
            candidates.append(os.path.join(media_dir, stripped))
        candidates.append(os.path.join(os.getcwd(), stripped))
    else:
        candidates.append(os.path.join(markdown_dir, path))
        if media_dir:
            candidates.append(os.path.join(media_dir, path))
            candidates.append(os.path.join(media_dir, os.path.basename(path)))
    return candidates


def find_image_path(src: str, media_folder: Optional[str] = None,
                    markdown_file_path: Optional[str] = None) -> Optional[str]:
    """Find the file on disk an image reference points to.

    Relative references are looked up next to the Markdown file first, then
    in the media folder (as given, then by file name). Root-absolute
    references are tried as-is, under the media folder and under the
    working directory.
    """
    if not is_local_path(src):
        return None
    for candidate in _candidate_paths(src, media_folder, markdown_file_path):
        if os.path.isfile(candidate):
            return os.path.normpath(os.path.abspath(candidate))
    return None


def find_local_images(sources: list[str], media_folder: Optional[str] = None,
                      markdown_file_path: Optional[str] = None) -> ImageSearchResult:
    """Resolve every local image reference of a document."""
    result = ImageSearchResult()
    for src in dict.fromkeys(sources):
        path = find_image_path(src, media_folder=media_folder, markdown_file_path=markdown_file_path)
        if path:
            result.found_paths[src] = path
        else:
            result.missing.append(src)
    return result
