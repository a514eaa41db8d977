"""Convert normalized HTML into a typed document node tree."""

import copy
import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from bs4 import BeautifulSoup, Tag, NavigableString
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from .errors import InvalidComponentTag
from .extensions import ALERT_ATTR
from .nodes import (
    FORMAT_BOLD, FORMAT_CODE, FORMAT_ITALIC, FORMAT_STRIKETHROUGH, FORMAT_UNDERLINE,
    SEVERITIES, AlertNode, CodeHighlightNode, CodeNode, CustomComponentNode,
    ElementNode, HeadingNode, ImageNode, LineBreakNode, LinkNode, ListItemNode,
    ListNode, MermaidNode, Node, ParagraphNode, QuoteNode, RootNode, TableCellNode,
    TableNode, TableRowNode, TextNode, export_document,
)


logger = logging.getLogger(__name__)

COMPONENT_PREFIX = 'x-'
MARKDOWN_ATTR = 'markdown'
COMPONENT_NAME_RE = re.compile(r'^[a-z][a-z0-9-]*$')

DEFAULT_COMPONENT_TAGS = (
    'x-code',
    'x-card',
    'x-cards',
    'x-code-group',
    'x-steps',
    'x-field',
    'x-field-group',
    'x-field-desc',
)

# Alert labels used by other doc tools, mapped onto the four severities
SEVERITY_ALIASES = {
    'danger': 'error',
    'caution': 'warning',
    'tip': 'success',
    'note': 'info',
}

TEXT_FORMATS = {
    'strong': FORMAT_BOLD,
    'b': FORMAT_BOLD,
    'em': FORMAT_ITALIC,
    'i': FORMAT_ITALIC,
    's': FORMAT_STRIKETHROUGH,
    'del': FORMAT_STRIKETHROUGH,
    'strike': FORMAT_STRIKETHROUGH,
    'u': FORMAT_UNDERLINE,
    'code': FORMAT_CODE,
}

SKIPPED_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)


@dataclass
class DOMConversion:
    """Result of a per-tag conversion rule.

    node: the node created for the element, or None to lift its children
    after: hook receiving the converted children, returning the list to keep
    text_format: format bits applied to every text node below the element
    """
    node: Optional[Node] = None
    after: Optional[Callable[[list], list]] = None
    text_format: int = 0


ConversionRule = Callable[[Tag], Optional[DOMConversion]]


def is_custom_component(element) -> bool:
    return isinstance(element, Tag) and element.name.startswith(COMPONENT_PREFIX)


def get_component_name(element: Tag) -> str:
    """Component name of a reserved tag ('x-card' -> 'card')."""
    name = element.name.lower()
    component = name[len(COMPONENT_PREFIX):]
    if not name.startswith(COMPONENT_PREFIX) or not COMPONENT_NAME_RE.match(component):
        raise InvalidComponentTag(name)
    return component


def element_dataset(element: Tag) -> dict:
    """data-* attributes keyed like the DOM dataset (data-fold-threshold -> foldThreshold)."""
    dataset = {}
    for attr, value in element.attrs.items():
        if not attr.startswith('data-'):
            continue
        key = re.sub(r'-([a-z])', lambda m: m.group(1).upper(), attr[5:])
        dataset[key] = ' '.join(value) if isinstance(value, list) else value
    return dataset


def trim_trailing_line_break(node: Optional[Node]):
    """Drop the spurious line break rendering leaves at the end of code blocks."""
    if isinstance(node, CodeNode):
        last_child = node.children[-1] if node.children else None
        if isinstance(last_child, LineBreakNode):
            node.children.pop()
        else:
            trim_trailing_line_break(last_child)


def iter_nodes(node: Node):
    yield node
    if isinstance(node, ElementNode):
        for child in node.children:
            yield from iter_nodes(child)


def _is_blank_text(node: Node) -> bool:
    return isinstance(node, TextNode) and not node.text.strip()


def wrap_inline(nodes: list) -> list:
    """Group runs of inline nodes into paragraphs, dropping whitespace-only runs."""
    result = []
    run = []

    def flush():
        if run and not all(_is_blank_text(node) for node in run):
            result.append(ParagraphNode(children=list(run)))
        run.clear()

    for node in nodes:
        if node.inline:
            run.append(node)
        else:
            flush()
            result.append(node)
    flush()
    return result


def flatten_paragraphs(nodes: list) -> list:
    """Inline the content of paragraphs, separating them with line breaks."""
    result = []
    previous_paragraph = False
    for node in nodes:
        if isinstance(node, ParagraphNode):
            if previous_paragraph:
                result.append(LineBreakNode())
            result.extend(node.children)
            previous_paragraph = True
        else:
            result.append(node)
            previous_paragraph = False
    return result


class DocumentTreeBuilder:
    """Builds a node tree from HTML through a registry of per-tag conversion rules."""

    def __init__(self, component_tags: tuple = DEFAULT_COMPONENT_TAGS):
        self.rules: dict[str, ConversionRule] = {
            'p': lambda el: DOMConversion(ParagraphNode()),
            'blockquote': lambda el: DOMConversion(QuoteNode(), after=flatten_paragraphs),
            'ul': self._convert_list,
            'ol': self._convert_list,
            'li': lambda el: DOMConversion(ListItemNode(), after=flatten_paragraphs),
            'pre': self._convert_pre,
            'a': self._convert_link,
            'img': self._convert_image,
            'br': lambda el: DOMConversion(LineBreakNode()),
            'table': lambda el: DOMConversion(TableNode()),
            'tr': lambda el: DOMConversion(TableRowNode()),
            'th': lambda el: DOMConversion(TableCellNode(header=True), after=wrap_inline),
            'td': lambda el: DOMConversion(TableCellNode(), after=wrap_inline),
            'div': self._convert_div,
        }
        for level in range(1, 7):
            self.rules[f'h{level}'] = self._convert_heading
        for tag, text_format in TEXT_FORMATS.items():
            self.rules[tag] = lambda el, fmt=text_format: DOMConversion(text_format=fmt)
        for tag in component_tags:
            self.register(tag, self._convert_custom_component)

    def register(self, tag: str, rule: ConversionRule):
        """Register (or replace) the conversion rule for a tag name."""
        self.rules[tag.lower()] = rule

    def build(self, html: str) -> RootNode:
        """Build the node tree for an HTML fragment."""
        soup = BeautifulSoup(html, 'html.parser')
        root = RootNode()
        root.append(*wrap_inline(self._convert_children(soup, 0)))
        for node in list(iter_nodes(root)):
            trim_trailing_line_break(node)
        return root

    def build_document(self, html: str) -> dict:
        """Build and serialize; the returned document shares no state with the nodes."""
        return copy.deepcopy(export_document(self.build(html)))

    # ---- DOM walk ----

    def _convert_children(self, element, text_format: int) -> list:
        nodes = []
        for child in element.children:
            nodes.extend(self._convert_node(child, text_format))
        return nodes

    def _convert_node(self, element, text_format: int) -> list:
        """Convert one DOM node into zero or more document nodes."""
        if isinstance(element, SKIPPED_STRINGS):
            return []

        if isinstance(element, NavigableString):
            return self._convert_text(str(element), text_format)

        if not isinstance(element, Tag):
            return []

        conversion = None
        rule = self.rules.get(element.name)
        if rule:
            try:
                conversion = rule(element)
            except InvalidComponentTag as e:
                logger.warning('Dropping element: %s', e)
                return []
        conversion = conversion or DOMConversion()

        children = self._convert_children(element, text_format | conversion.text_format)
        if conversion.after:
            children = conversion.after(children)

        node = conversion.node
        if node is None:
            return children
        if isinstance(node, ElementNode):
            node.append(*children)
        return [node]

    def _convert_text(self, text: str, text_format: int) -> list:
        # Whitespace between block elements carries a newline; inline spaces don't
        if not text.strip() and '\n' in text:
            return []
        return [TextNode(text=re.sub(r'\s+', ' ', text), format=text_format)]

    # ---- Conversion rules ----

    def _convert_heading(self, element: Tag) -> DOMConversion:
        return DOMConversion(HeadingNode(tag=element.name))

    def _convert_list(self, element: Tag) -> DOMConversion:
        if element.name == 'ol':
            try:
                start = int(element.get('start', 1))
            except ValueError:
                start = 1
            node = ListNode(list_type='number', start=start)
        else:
            node = ListNode(list_type='bullet')

        def number_items(children):
            value = node.start
            for child in children:
                if isinstance(child, ListItemNode):
                    child.value = value
                    value += 1
            return children

        return DOMConversion(node, after=number_items)

    def _convert_pre(self, element: Tag) -> DOMConversion:
        text = element.get_text()
        if 'mermaid' in (element.get('class') or []):
            return DOMConversion(MermaidNode(code=text))

        language = None
        code = element.find('code')
        if code:
            for cls in code.get('class') or []:
                if cls.startswith('language-'):
                    language = cls[len('language-'):]
                    break

        lines = []
        for i, line in enumerate(text.split('\n')):
            if i:
                lines.append(LineBreakNode())
            if line:
                lines.append(CodeHighlightNode(text=line))
        return DOMConversion(CodeNode(language=language), after=lambda _children: lines)

    def _convert_link(self, element: Tag) -> DOMConversion:
        rel = element.get('rel')
        return DOMConversion(LinkNode(
            url=element.get('href', ''),
            title=element.get('title'),
            rel=' '.join(rel) if isinstance(rel, list) else rel,
            target=element.get('target'),
        ))

    def _convert_image(self, element: Tag) -> DOMConversion:
        return DOMConversion(ImageNode(src=element.get('src', ''), alt_text=element.get('alt', '')))

    def _convert_div(self, element: Tag) -> Optional[DOMConversion]:
        if not element.has_attr(ALERT_ATTR):
            return None
        payload = element.get(ALERT_ATTR)
        try:
            parsed = json.loads(payload)
        except (TypeError, ValueError) as e:
            logger.warning('Failed to parse alert payload %r: %s', payload, e)
            return None
        if not isinstance(parsed, dict):
            logger.warning('Failed to parse alert payload %r', payload)
            return None

        severity = str(parsed.get('severity', '')).lower()
        if severity in SEVERITY_ALIASES:
            logger.debug('Alert severity %r mapped to %r', severity, SEVERITY_ALIASES[severity])
            severity = SEVERITY_ALIASES[severity]
        if severity not in SEVERITIES:
            logger.warning('Unknown alert severity %r, using "info"', parsed.get('severity'))
            severity = 'info'
        return DOMConversion(AlertNode(text=parsed.get('text', ''), severity=severity))

    def _convert_custom_component(self, element: Tag) -> DOMConversion:
        component = get_component_name(element)
        properties = {'component': component}
        properties.update(element_dataset(element))

        if element.find(is_custom_component) is None:
            properties['body'] = element.get_text().strip()

        node = CustomComponentNode(component=component, properties=properties)
        has_inline_markdown = element.has_attr(MARKDOWN_ATTR)

        def after(children):
            if has_inline_markdown:
                properties['childNodes'] = [child.export_json() for child in children]
            else:
                properties['children'] = [
                    child.data for child in children if isinstance(child, CustomComponentNode)
                ]
            return children

        return DOMConversion(node, after=after)
