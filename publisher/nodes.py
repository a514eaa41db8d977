"""Document node types and their JSON (Lexical editor state) export.

The node set is closed: every node class carries its `type` discriminant and
is listed in NODE_TYPES.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional


# Text format bit flags
FORMAT_BOLD = 1
FORMAT_ITALIC = 1 << 1
FORMAT_STRIKETHROUGH = 1 << 2
FORMAT_UNDERLINE = 1 << 3
FORMAT_CODE = 1 << 4

SEVERITIES = ('success', 'info', 'warning', 'error')


@dataclass
class Node:
    type: ClassVar[str] = ''
    inline: ClassVar[bool] = False

    def export_json(self) -> dict:
        return {'type': self.type, 'version': 1}


@dataclass
class ElementNode(Node):
    children: list = field(default_factory=list)

    def append(self, *nodes: Node):
        self.children.extend(nodes)

    def export_json(self) -> dict:
        return {
            'children': [child.export_json() for child in self.children],
            'direction': None,
            'format': '',
            'indent': 0,
            'type': self.type,
            'version': 1,
        }


@dataclass
class DecoratorNode(Node):
    """Leaf node that keeps its content in its own fields, not in children."""

    def export_json(self) -> dict:
        return {'format': '', 'type': self.type, 'version': 1}


@dataclass
class RootNode(ElementNode):
    type: ClassVar[str] = 'root'


@dataclass
class ParagraphNode(ElementNode):
    type: ClassVar[str] = 'paragraph'

    def export_json(self) -> dict:
        data = super().export_json()
        data.update({'textFormat': 0, 'textStyle': ''})
        return data


@dataclass
class HeadingNode(ElementNode):
    type: ClassVar[str] = 'heading'
    tag: str = 'h1'

    def export_json(self) -> dict:
        data = super().export_json()
        data['tag'] = self.tag
        return data


@dataclass
class QuoteNode(ElementNode):
    type: ClassVar[str] = 'quote'


@dataclass
class ListNode(ElementNode):
    type: ClassVar[str] = 'list'
    list_type: str = 'bullet'
    start: int = 1

    def export_json(self) -> dict:
        data = super().export_json()
        data.update({
            'listType': self.list_type,
            'start': self.start,
            'tag': 'ol' if self.list_type == 'number' else 'ul',
        })
        return data


@dataclass
class ListItemNode(ElementNode):
    type: ClassVar[str] = 'listitem'
    value: int = 1

    def export_json(self) -> dict:
        data = super().export_json()
        data['value'] = self.value
        return data


@dataclass
class CodeNode(ElementNode):
    type: ClassVar[str] = 'code'
    language: Optional[str] = None

    def export_json(self) -> dict:
        data = super().export_json()
        data['language'] = self.language
        return data


@dataclass
class LinkNode(ElementNode):
    type: ClassVar[str] = 'link'
    inline: ClassVar[bool] = True
    url: str = ''
    title: Optional[str] = None
    rel: Optional[str] = None
    target: Optional[str] = None

    def export_json(self) -> dict:
        data = super().export_json()
        data.update({'url': self.url, 'title': self.title, 'rel': self.rel, 'target': self.target})
        return data


@dataclass
class TableNode(ElementNode):
    type: ClassVar[str] = 'table'


@dataclass
class TableRowNode(ElementNode):
    type: ClassVar[str] = 'tablerow'


@dataclass
class TableCellNode(ElementNode):
    type: ClassVar[str] = 'tablecell'
    header: bool = False

    def export_json(self) -> dict:
        data = super().export_json()
        data.update({'headerState': 1 if self.header else 0, 'colSpan': 1, 'rowSpan': 1})
        return data


@dataclass
class TextNode(Node):
    type: ClassVar[str] = 'text'
    inline: ClassVar[bool] = True
    text: str = ''
    format: int = 0

    def export_json(self) -> dict:
        return {
            'detail': 0,
            'format': self.format,
            'mode': 'normal',
            'style': '',
            'text': self.text,
            'type': self.type,
            'version': 1,
        }


@dataclass
class CodeHighlightNode(TextNode):
    type: ClassVar[str] = 'code-highlight'

    def export_json(self) -> dict:
        data = super().export_json()
        data['highlightType'] = None
        return data


@dataclass
class LineBreakNode(Node):
    type: ClassVar[str] = 'linebreak'
    inline: ClassVar[bool] = True


@dataclass
class ImageNode(DecoratorNode):
    type: ClassVar[str] = 'image'
    inline: ClassVar[bool] = True
    src: str = ''
    alt_text: str = ''
    width: Optional[int] = None
    height: Optional[int] = None

    def export_json(self) -> dict:
        data = super().export_json()
        data.update({'src': self.src, 'altText': self.alt_text})
        if self.width and self.height:
            data.update({'width': self.width, 'height': self.height})
        return data


@dataclass
class MermaidNode(DecoratorNode):
    type: ClassVar[str] = 'mermaid'
    code: str = ''

    def export_json(self) -> dict:
        data = super().export_json()
        data['code'] = self.code
        return data


@dataclass
class AlertNode(DecoratorNode):
    type: ClassVar[str] = 'alert'
    text: str = ''
    severity: str = 'info'

    def export_json(self) -> dict:
        data = super().export_json()
        data.update({'text': self.text, 'severity': self.severity})
        return data


@dataclass
class CustomComponentNode(DecoratorNode):
    type: ClassVar[str] = 'x-component'
    component: str = ''
    properties: dict = field(default_factory=dict)

    @property
    def data(self) -> dict:
        """The {component, properties} payload nested into parent components."""
        return {'component': self.component, 'properties': self.properties}

    def export_json(self) -> dict:
        out = super().export_json()
        out['data'] = self.data
        return out


NODE_TYPES = {
    cls.type: cls
    for cls in (
        RootNode, ParagraphNode, HeadingNode, QuoteNode, ListNode, ListItemNode,
        CodeNode, CodeHighlightNode, TextNode, LineBreakNode, LinkNode, ImageNode,
        MermaidNode, TableNode, TableRowNode, TableCellNode, AlertNode,
        CustomComponentNode,
    )
}


def export_document(root: RootNode) -> dict:
    """Serialize a built tree into a portable editor-state document."""
    return {'root': root.export_json()}
