"""Convert publisher-flavored Markdown into a serialized document tree.

Publisher Markdown is CommonMark plus `:::severity` alert blocks, annotated
code fences and reserved <x-*> component tags. Relative links between pages
are rewritten to cross-reference slugs along the way.
"""

import html
import re
import threading
from dataclasses import dataclass
from typing import Optional

import yaml
from bs4 import BeautifulSoup
from markdown_it import MarkdownIt
from markdown_it.common.utils import escapeHtml, unescapeAll

from .assets import process_images
from .config import ConversionOptions
from .errors import FrontMatterError
from .extensions import alert_plugin, heading_code_spans_plugin, parse_code_lang_str
from .image_utils import resolve_image_dimensions
from .slugs import SlugRegistry, SlugResolver
from .tree_builder import COMPONENT_PREFIX, MARKDOWN_ATTR, DocumentTreeBuilder
from .uploader import upload_files
from .utils import is_relative_link, remove_indent


FRONTMATTER_RE = re.compile(r'\A---[ \t]*\r?\n(.*?)^---[ \t]*$\r?\n?', re.DOTALL | re.MULTILINE)
# line breaks as markdown-it counts them for token.map
NEWLINE_RE = re.compile(r'\r\n?|\n')


@dataclass
class ConversionResult:
    """Output of converting a single document."""
    title: Optional[str] = None
    labels: Optional[list] = None
    icon: Optional[str] = None
    content: Optional[dict] = None  # None for blank documents

    def to_dict(self) -> dict:
        data = {}
        if self.title is not None:
            data['title'] = self.title
        if self.labels is not None:
            data['labels'] = self.labels
        if self.icon is not None:
            data['icon'] = self.icon
        data['content'] = self.content
        return data


class ConversionContext:
    """Cross-document state of a Converter.

    Created with the converter and kept across convert() calls; callers read
    the slug registry and blank-file list after a batch. Updates are guarded
    so documents may be converted concurrently through one converter.
    """

    def __init__(self):
        self.slug_registry = SlugRegistry()
        self._blank_file_paths: list[str] = []
        self._lock = threading.Lock()

    def add_blank_file(self, file_path: str):
        with self._lock:
            self._blank_file_paths.append(file_path)

    @property
    def blank_file_paths(self) -> list[str]:
        with self._lock:
            return list(self._blank_file_paths)


def split_frontmatter(content: str) -> tuple[dict, str]:
    """Split YAML front matter from the body."""
    content = content.lstrip('\ufeff')
    match = FRONTMATTER_RE.match(content)
    if not match:
        return {}, content

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise FrontMatterError(f'Invalid front matter: {e}') from e

    if not isinstance(data, dict):
        data = {}
    return data, content[match.end():]


def extract_title(body: str, md: Optional[MarkdownIt] = None) -> tuple[Optional[str], str]:
    """Take the first top-level H1 out of the body. Returns (title, remaining body).

    Headings are found on the parsed token stream, so `# ...` lines inside
    code fences, HTML blocks or alerts are left alone.
    """
    if md is None:
        md = MarkdownIt('commonmark', {'html': True}).use(alert_plugin)

    tokens = md.parse(body)
    for i, token in enumerate(tokens):
        if token.type != 'heading_open' or token.tag != 'h1' or token.level != 0:
            continue
        title = tokens[i + 1].content.strip()
        start, end = token.map
        lines = NEWLINE_RE.split(body)
        return title, '\n'.join(lines[:start] + lines[end:]).strip()
    return None, body


class Converter:
    """Converts publisher Markdown documents into document trees."""

    def __init__(self, options: Optional[ConversionOptions] = None,
                 uploader=upload_files, dimension_resolver=resolve_image_dimensions,
                 tree_builder: Optional[DocumentTreeBuilder] = None):
        """
        Args:
            options: slug and upload settings shared by every document
            uploader: coroutine uploading local files to the asset store
            dimension_resolver: coroutine returning ImageDimensions for an image source
            tree_builder: HTML -> node tree builder (default component tags when omitted)
        """
        self.options = options or ConversionOptions()
        self.context = ConversionContext()
        self.slugs = SlugResolver(
            self.context.slug_registry,
            self.options.resolve_docs_root(),
            slug_prefix=self.options.slug_prefix,
            without_ext=self.options.slug_without_ext,
        )
        self.uploader = uploader
        self.dimension_resolver = dimension_resolver
        self.tree_builder = tree_builder or DocumentTreeBuilder()
        self.md = self._create_parser()

    @property
    def used_slugs(self) -> dict[str, list[str]]:
        return self.context.slug_registry.as_dict()

    @property
    def blank_file_paths(self) -> list[str]:
        return self.context.blank_file_paths

    async def convert(self, content: str, file_path: str) -> ConversionResult:
        """Convert a Markdown document to a serialized document tree.

        Args:
            content: Markdown source including front matter
            file_path: path of the source file, used to resolve links and images
        """
        front_matter, body = split_frontmatter(content)
        body = body.strip()

        labels = front_matter.get('labels')
        labels = labels if isinstance(labels, list) else None
        icon = front_matter.get('icon')
        icon = icon if isinstance(icon, str) else None

        title, body = extract_title(body, self.md)

        if not body.strip():
            self.context.add_blank_file(file_path)
            return ConversionResult(title=title, labels=labels, icon=icon, content=None)

        html_content = self.render(body, file_path)
        tree = self.tree_builder.build_document(html_content)

        upload_config = self.options.upload_config
        if upload_config:
            tree = await process_images(
                tree, file_path, upload_config,
                uploader=self.uploader,
                dimension_resolver=self.dimension_resolver,
            )

        return ConversionResult(title=title, labels=labels, icon=icon, content=tree)

    def render(self, body: str, file_path: str) -> str:
        """Render Markdown to the normalized HTML consumed by the tree builder."""
        return self.md.render(body, {'file_path': file_path})

    # ---- Rendering overrides ----

    def _create_parser(self) -> MarkdownIt:
        md = MarkdownIt('commonmark', {'html': True}).enable('table').enable('strikethrough')
        md.use(alert_plugin).use(heading_code_spans_plugin)

        md.renderer.rules['fence'] = self._render_code
        md.renderer.rules['code_block'] = self._render_code
        md.renderer.rules['link_open'] = self._render_link_open
        md.renderer.rules['html_block'] = self._render_html_block
        return md

    def _render_code(self, tokens, idx, options, env) -> str:
        token = tokens[idx]
        attrs = parse_code_lang_str(unescapeAll(token.info or ''))
        lang = attrs.pop('lang')

        if lang == 'mermaid':
            return f'<pre class="mermaid">{escapeHtml(token.content)}</pre>\n'

        data_attrs = ''.join(
            f' data-{html.escape(_kebab_case(key))}="{html.escape(value)}"'
            for key, value in attrs.items()
        )
        return f'<x-code data-language="{html.escape(lang)}"{data_attrs}>{escapeHtml(token.content)}</x-code>\n'

    def _render_link_open(self, tokens, idx, options, env) -> str:
        token = tokens[idx]
        href = token.attrGet('href') or ''
        if is_relative_link(href):
            token.attrSet('href', self.slugs.href(href, env['file_path']))
        return self.md.renderer.renderToken(tokens, idx, options, env)

    def _render_html_block(self, tokens, idx, options, env) -> str:
        content = tokens[idx].content
        if not content.lstrip().startswith(f'<{COMPONENT_PREFIX}'):
            return content
        return self._render_component_html(content, env)

    def _render_component_html(self, text: str, env: dict) -> str:
        """Rewrite component data-href values and expand inline markdown."""
        soup = BeautifulSoup(text, 'html.parser')
        for element in soup.find_all(attrs={'data-href': True}):
            element['data-href'] = self.slugs.component_href(element['data-href'])

        for element in soup.find_all(recursive=False):
            self._render_inline_markdown(element, env)
        return str(soup)

    def _render_inline_markdown(self, element, env: dict):
        """Replace the content of `markdown`-marked elements with rendered inline markdown."""
        if element.has_attr(MARKDOWN_ATTR):
            rendered = self.md.renderInline(remove_indent(element.get_text()), env)
            fragment = BeautifulSoup(rendered, 'html.parser')
            element.clear()
            for child in list(fragment.contents):
                element.append(child.extract())
            return

        for child in element.find_all(recursive=False):
            self._render_inline_markdown(child, env)


def _kebab_case(key: str) -> str:
    # foldThreshold -> fold-threshold, so the DOM dataset maps it back
    return re.sub(r'([A-Z])', lambda m: '-' + m.group(1).lower(), key)


async def convert(content: str, file_path: str,
                  options: Optional[ConversionOptions] = None) -> ConversionResult:
    """Convert a single document with a throwaway Converter."""
    return await Converter(options).convert(content, file_path)
