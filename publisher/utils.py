"""Shared utilities for the document publisher."""

import os
import re
from urllib.parse import unquote


REMOTE_URL_RE = re.compile(r'^(?:https?:)?//', re.IGNORECASE)

# Targets left alone by the link rewriter
NON_RELATIVE_LINK_RE = re.compile(r'^(?:https?://|/|#|mailto:)', re.IGNORECASE)


def is_remote_url(src: str) -> bool:
    """Check if an image/link source points to a remote server."""
    return bool(src) and bool(REMOTE_URL_RE.match(src))


def is_data_url(src: str) -> bool:
    return bool(src) and src.lower().startswith('data:')


def is_local_path(src: str) -> bool:
    """Check if a source refers to a file on disk (relative or absolute)."""
    if not src or not src.strip():
        return False
    return not is_remote_url(src) and not is_data_url(src)


def is_relative_link(href: str) -> bool:
    """Check if a link target is relative to the current document."""
    if not href:
        return False
    return not NON_RELATIVE_LINK_RE.match(href)


def slugify(rel_path: str, without_ext: bool = True) -> str:
    """Create a stable cross-reference slug from a docs-root-relative path.

    'guide/setup.md' -> 'guide-setup' (or 'guide-setup.md' when the
    extension is kept).
    """
    path = unquote(rel_path).replace('\\', '/').strip()
    path = re.sub(r'^(?:\.{1,2}/)+', '', path)
    if without_ext:
        path = re.sub(r'\.[^./]+$', '', path)
    path = re.sub(r'[/\s]+', '-', path)
    path = re.sub(r'[^\w.\-]', '', path)
    return path.strip('-')


def remove_indent(text: str) -> str:
    """Remove the indentation shared by all non-blank lines.

    Whitespace-only lines come back empty; trailing whitespace on content
    lines is preserved.
    """
    lines = text.split('\n')
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    common = min(indents) if indents else 0
    result = []
    for line in lines:
        if not line.strip():
            result.append('')
        else:
            result.append(line[common:])
    return '\n'.join(result)


def ensure_dir(path: str):
    """Create the parent directory of a file path if it doesn't exist."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
