"""Cross-reference slugs for links between documentation pages."""

import os
import posixpath
import re
import threading
from typing import Optional
from urllib.parse import unquote

from .utils import slugify


# guide.zh.md -> guide.md
LOCALE_SUFFIX_RE = re.compile(r'\.([a-zA-Z-]+)\.md$')


class SlugRegistry:
    """Which source files produced which slugs.

    Append-only and insertion-ordered. A slug reached from more than one
    distinct normalized path is a collision; collisions are recorded, never
    raised.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sources: dict[str, list[str]] = {}
        self._targets: dict[str, list[str]] = {}

    def record(self, slug: str, source_path: str, target_path: Optional[str] = None):
        with self._lock:
            self._sources.setdefault(slug, []).append(source_path)
            if target_path is not None:
                targets = self._targets.setdefault(slug, [])
                if target_path not in targets:
                    targets.append(target_path)

    def sources(self, slug: str) -> list[str]:
        with self._lock:
            return list(self._sources.get(slug, []))

    def as_dict(self) -> dict[str, list[str]]:
        """Snapshot of slug -> source file paths."""
        with self._lock:
            return {slug: list(paths) for slug, paths in self._sources.items()}

    def collisions(self) -> dict[str, list[str]]:
        """Slugs mapped to more than one distinct normalized path."""
        with self._lock:
            return {slug: list(paths) for slug, paths in self._targets.items() if len(paths) > 1}

    def __contains__(self, slug: str) -> bool:
        with self._lock:
            return slug in self._sources

    def __len__(self) -> int:
        with self._lock:
            return len(self._sources)


def normalize_link_path(href: str, file_path: str, docs_root: str) -> tuple[str, str]:
    """Resolve a relative link to a docs-root-relative path and its anchor.

    Returns (path, anchor); anchor is '' when the link has none.
    """
    path, _, anchor = unquote(href).partition('#')
    if path:
        abs_path = os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(file_path)), path))
        rel_path = os.path.relpath(abs_path, docs_root)
    else:
        rel_path = os.path.relpath(os.path.abspath(file_path), docs_root)
    rel_path = rel_path.replace(os.sep, posixpath.sep)
    rel_path = LOCALE_SUFFIX_RE.sub('.md', rel_path)
    return rel_path, anchor


class SlugResolver:
    """Turns relative links into slugs and records them in a registry."""

    def __init__(self, registry: SlugRegistry, docs_root: str,
                 slug_prefix: Optional[str] = None, without_ext: bool = True):
        self.registry = registry
        self.docs_root = docs_root
        self.slug_prefix = slug_prefix
        self.without_ext = without_ext

    def resolve(self, href: str, file_path: str) -> tuple[str, str]:
        """Return (slug, anchor) for a relative link found in file_path."""
        rel_path, anchor = normalize_link_path(href, file_path, self.docs_root)
        slug = slugify(rel_path, self.without_ext)
        self.registry.record(slug, file_path, rel_path)
        return slug, anchor

    def href(self, href: str, file_path: str) -> str:
        """Final link target: slug[-prefix][#anchor]."""
        slug, anchor = self.resolve(href, file_path)
        result = f'{slug}-{self.slug_prefix}' if self.slug_prefix else slug
        if anchor:
            result += f'#{anchor}'
        return result

    def component_href(self, value: str) -> str:
        """Rewrite a root-absolute data-href ('/a/b/c' -> 'a-b-c[-prefix]')."""
        if not value.startswith('/'):
            return value
        result = value[1:].replace('/', '-')
        if self.slug_prefix:
            result += f'-{self.slug_prefix}'
        return result
