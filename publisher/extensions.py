"""markdown-it extensions for the publisher's custom block syntax.

Adds:
- `:::severity ... :::` alert blocks, rendered as a placeholder element that
  the tree builder turns into an alert node
- literal text for code spans inside headings
- parsing of annotated code-fence info strings
"""

import html
import json
import re

from markdown_it import MarkdownIt
from markdown_it.rules_block import StateBlock
from markdown_it.rules_core import StateCore


ALERT_ATTR = 'data-alert'
ALERT_OPEN_RE = re.compile(r'^:::([A-Za-z0-9_-]+)')
ALERT_CLOSE = ':::'

# key=value with a double-quoted, single-quoted or bare value
KEY_VALUE_RE = re.compile(r'''(?<!\S)(\w+)=(?:"([^"]*)"|'([^']*)'|(\S+))''')


def parse_code_lang_str(info: str = '') -> dict:
    """Parse the info string of a fenced code block.

    ```js MyTitle icon='mdi:javascript' foldable=true
    -> {'lang': 'js', 'title': 'MyTitle', 'icon': 'mdi:javascript', 'foldable': 'true'}

    Comma modifiers on the language are dropped ('rust,no-run' -> 'rust').
    Attributes are merged last, so an explicit title= wins over free text.
    """
    info = (info or '').strip()
    if not info:
        return {'lang': '', 'title': ''}

    parts = re.split(r'\s+', info, maxsplit=1)
    lang = parts[0].split(',', 1)[0]
    rest = parts[1] if len(parts) > 1 else ''

    attrs = {}
    title_parts = []
    pos = 0
    for match in KEY_VALUE_RE.finditer(rest):
        title_parts.append(rest[pos:match.start()])
        double, single, bare = match.group(2), match.group(3), match.group(4)
        if double is not None:
            attrs[match.group(1)] = double
        elif single is not None:
            attrs[match.group(1)] = single
        else:
            attrs[match.group(1)] = bare
        pos = match.end()
    title_parts.append(rest[pos:])

    title = ' '.join(' '.join(title_parts).split())
    return {'lang': lang, 'title': title, **attrs}


def _line_text(state: StateBlock, line: int) -> str:
    return state.src[state.bMarks[line] + state.tShift[line]:state.eMarks[line]]


def alert_block(state: StateBlock, start_line: int, end_line: int, silent: bool) -> bool:
    """Block rule for `:::severity` fences.

    Declines (leaving the text to the paragraph rule) when the severity is
    missing or no closing `:::` line follows.
    """
    if state.sCount[start_line] - state.blkIndent >= 4:
        return False

    match = ALERT_OPEN_RE.match(_line_text(state, start_line))
    if not match:
        return False

    close_line = start_line + 1
    while close_line < end_line:
        if (state.sCount[close_line] - state.blkIndent < 4
                and _line_text(state, close_line).rstrip() == ALERT_CLOSE):
            break
        close_line += 1
    else:
        return False

    if silent:
        return True

    body = state.getLines(start_line + 1, close_line, state.blkIndent, False)

    token = state.push('alert', 'div', 0)
    token.block = True
    token.markup = ALERT_CLOSE
    token.map = [start_line, close_line + 1]
    token.content = state.getLines(start_line, close_line + 1, state.blkIndent, False)
    token.meta = {'severity': match.group(1), 'text': body.strip()}

    state.line = close_line + 1
    return True


def render_alert(self, tokens, idx, options, env) -> str:
    meta = tokens[idx].meta
    data = json.dumps({'text': meta['text'], 'severity': meta['severity']}, ensure_ascii=False)
    return f'<div {ALERT_ATTR}="{html.escape(data, quote=True)}"></div>\n'


def alert_plugin(md: MarkdownIt):
    """Register the alert block rule and its renderer."""
    md.block.ruler.before(
        'fence', 'alert', alert_block,
        {'alt': ['paragraph', 'reference', 'blockquote', 'list']},
    )
    md.add_render_rule('alert', render_alert)


def _heading_code_spans(state: StateCore):
    tokens = state.tokens
    for i, token in enumerate(tokens):
        if token.type != 'heading_open' or i + 1 >= len(tokens):
            continue
        inline = tokens[i + 1]
        for child in inline.children or []:
            if child.type == 'code_inline':
                child.type = 'text'
                child.tag = ''
                child.markup = ''


def heading_code_spans_plugin(md: MarkdownIt):
    """Render code spans inside headings as literal text."""
    md.core.ruler.push('heading_code_spans', _heading_code_spans)
