import logging

import pytest
from bs4 import BeautifulSoup

from publisher.errors import InvalidComponentTag
from publisher.nodes import FORMAT_BOLD, FORMAT_ITALIC
from publisher.tree_builder import (
    DEFAULT_COMPONENT_TAGS, DocumentTreeBuilder, element_dataset, get_component_name,
)


def build(html, builder=None):
    return (builder or DocumentTreeBuilder()).build_document(html)['root']


def texts(node):
    return [child['text'] for child in node['children'] if child['type'] == 'text']


def test_root_shape():
    root = build('<p>Hello</p>')
    assert root['type'] == 'root'
    assert root['version'] == 1
    paragraph = root['children'][0]
    assert paragraph['type'] == 'paragraph'
    assert paragraph['children'][0] == {
        'detail': 0, 'format': 0, 'mode': 'normal', 'style': '',
        'text': 'Hello', 'type': 'text', 'version': 1,
    }


def test_loose_inline_content_is_wrapped_in_paragraphs():
    root = build('Hello <em>there</em>\n<h2>Title</h2>')
    assert [node['type'] for node in root['children']] == ['paragraph', 'heading']
    assert root['children'][1]['tag'] == 'h2'


def test_nested_text_formats_combine():
    paragraph = build('<p><strong>a <em>b</em></strong></p>')['children'][0]
    assert [(n['text'], n['format']) for n in paragraph['children']] == [
        ('a ', FORMAT_BOLD),
        ('b', FORMAT_BOLD | FORMAT_ITALIC),
    ]


def test_ordered_list_numbering():
    root = build('<ol start="3">\n<li>a</li>\n<li>b</li>\n</ol>')
    list_node = root['children'][0]
    assert list_node['listType'] == 'number'
    assert list_node['start'] == 3
    assert list_node['tag'] == 'ol'
    assert [item['value'] for item in list_node['children']] == [3, 4]
    assert texts(list_node['children'][1]) == ['b']


def test_blockquote_paragraphs_are_joined_with_line_breaks():
    quote = build('<blockquote>\n<p>a</p>\n<p>b</p>\n</blockquote>')['children'][0]
    assert quote['type'] == 'quote'
    assert [child['type'] for child in quote['children']] == ['text', 'linebreak', 'text']


def test_link_and_image():
    paragraph = build('<p><a href="guide-setup#install" title="Setup">setup</a> <img src="a.png" alt="A"></p>')['children'][0]
    link, _, image = paragraph['children']
    assert link['type'] == 'link'
    assert link['url'] == 'guide-setup#install'
    assert link['title'] == 'Setup'
    assert texts(link) == ['setup']
    assert image == {'format': '', 'type': 'image', 'version': 1, 'src': 'a.png', 'altText': 'A'}


def test_table_cells():
    table = build('<table><tr><th>H</th></tr><tr><td>c</td></tr></table>')['children'][0]
    header_cell = table['children'][0]['children'][0]
    body_cell = table['children'][1]['children'][0]
    assert header_cell['headerState'] == 1
    assert body_cell['headerState'] == 0
    assert body_cell['children'][0]['type'] == 'paragraph'


def test_code_block_trailing_line_break_is_trimmed():
    code = build('<pre><code class="language-py">a\nb\n</code></pre>')['children'][0]
    assert code['type'] == 'code'
    assert code['language'] == 'py'
    assert [child['type'] for child in code['children']] == ['code-highlight', 'linebreak', 'code-highlight']


def test_mermaid_block():
    root = build('<pre class="mermaid">graph TD\nA--&gt;B\n</pre>')
    assert root['children'] == [{'format': '', 'type': 'mermaid', 'version': 1, 'code': 'graph TD\nA-->B\n'}]


def test_alert_placeholder():
    root = build('<div data-alert="{&quot;text&quot;: &quot;Careful&quot;, &quot;severity&quot;: &quot;warning&quot;}"></div>')
    assert root['children'] == [
        {'format': '', 'type': 'alert', 'version': 1, 'text': 'Careful', 'severity': 'warning'},
    ]


@pytest.mark.parametrize('severity, expected', [
    ('tip', 'success'),
    ('danger', 'error'),
    ('ERROR', 'error'),
    ('bogus', 'info'),
])
def test_alert_severity_normalization(severity, expected):
    html = f'<div data-alert=\'{{"text": "t", "severity": "{severity}"}}\'></div>'
    assert build(html)['children'][0]['severity'] == expected


def test_alert_alias_is_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger='publisher.tree_builder'):
        build('<div data-alert=\'{"text": "t", "severity": "danger"}\'></div>')
    assert "Alert severity 'danger' mapped to 'error'" in caplog.text


def test_unparsable_alert_payload_is_dropped(caplog):
    with caplog.at_level(logging.WARNING):
        root = build('<div data-alert="not json"></div>')
    assert root['children'] == []
    assert 'Failed to parse alert payload' in caplog.text


def test_component_properties():
    root = build('<x-code data-language="js" data-fold-threshold="10">console.log(1)\n</x-code>')
    node = root['children'][0]
    assert node['type'] == 'x-component'
    assert node['data'] == {
        'component': 'code',
        'properties': {
            'component': 'code',
            'language': 'js',
            'foldThreshold': '10',
            'body': 'console.log(1)',
            'children': [],
        },
    }


def test_nested_components_become_children():
    root = build(
        '<x-cards>\n'
        '  <x-card data-title="A" data-image="a.png"></x-card>\n'
        '  <x-card data-title="B"></x-card>\n'
        '</x-cards>'
    )
    properties = root['children'][0]['data']['properties']
    assert 'body' not in properties
    assert [child['component'] for child in properties['children']] == ['card', 'card']
    first = properties['children'][0]['properties']
    assert first['title'] == 'A'
    assert first['image'] == 'a.png'


def test_markdown_component_keeps_child_nodes():
    root = build('<x-card data-title="Hi" markdown>Some <strong>bold</strong></x-card>')
    properties = root['children'][0]['data']['properties']
    assert 'children' not in properties
    assert properties['body'] == 'Some bold'
    assert [(n['text'], n['format']) for n in properties['childNodes']] == [
        ('Some ', 0),
        ('bold', FORMAT_BOLD),
    ]


def test_mixed_children_keep_only_component_payloads():
    root = build(
        '<x-steps>intro <b>bold</b>'
        '<x-field data-name="a">A</x-field>'
        ' tail <x-field data-name="b"></x-field></x-steps>'
    )
    properties = root['children'][0]['data']['properties']
    assert 'body' not in properties
    assert 'childNodes' not in properties
    assert [child['component'] for child in properties['children']] == ['field', 'field']
    assert [child['properties']['name'] for child in properties['children']] == ['a', 'b']
    assert properties['children'][0]['properties']['body'] == 'A'


def test_markdown_component_keeps_mixed_child_nodes():
    root = build(
        '<x-steps markdown>intro <b>bold</b>'
        '<x-field data-name="a">A</x-field></x-steps>'
    )
    properties = root['children'][0]['data']['properties']
    assert 'children' not in properties
    child_nodes = properties['childNodes']
    assert [node['type'] for node in child_nodes] == ['text', 'text', 'x-component']
    assert [(n['text'], n['format']) for n in child_nodes[:2]] == [('intro ', 0), ('bold', FORMAT_BOLD)]
    assert child_nodes[2]['data']['properties']['name'] == 'a'


def test_unregistered_tags_are_lifted():
    root = build('<x-unknown>text</x-unknown>')
    assert root['children'][0]['type'] == 'paragraph'
    assert texts(root['children'][0]) == ['text']


def test_invalid_component_tag_is_dropped(caplog):
    builder = DocumentTreeBuilder(component_tags=DEFAULT_COMPONENT_TAGS + ('x-1abc',))
    with caplog.at_level(logging.WARNING):
        root = build('<p>ok</p><x-1abc>bad</x-1abc>', builder)
    assert [node['type'] for node in root['children']] == ['paragraph']
    assert 'Invalid component name: x-1abc' in caplog.text


def test_get_component_name():
    soup = BeautifulSoup('<x-field-group></x-field-group><x-1abc></x-1abc><card></card>', 'html.parser')
    assert get_component_name(soup.find('x-field-group')) == 'field-group'
    with pytest.raises(InvalidComponentTag):
        get_component_name(soup.find('x-1abc'))
    with pytest.raises(InvalidComponentTag):
        get_component_name(soup.find('card'))


def test_element_dataset():
    element = BeautifulSoup('<x-card data-title="T" data-fold-threshold="3" class="a b" markdown></x-card>',
                            'html.parser').find('x-card')
    assert element_dataset(element) == {'title': 'T', 'foldThreshold': '3'}


def test_custom_rule_registration():
    builder = DocumentTreeBuilder()
    builder.register('mark', lambda el: None)
    root = build('<p><mark>hi</mark></p>', builder)
    assert texts(root['children'][0]) == ['hi']


def test_documents_do_not_share_state():
    builder = DocumentTreeBuilder()
    first = builder.build_document('<p><img src="a.png"></p>')
    second = builder.build_document('<p><img src="a.png"></p>')
    first['root']['children'][0]['children'][0]['src'] = 'changed'
    assert second['root']['children'][0]['children'][0]['src'] == 'a.png'


def test_every_exported_type_is_registered():
    from publisher.nodes import NODE_TYPES

    def walk(node):
        yield node['type']
        for child in node.get('children', []):
            yield from walk(child)

    root = build(
        '<h1>T</h1><blockquote><p>q</p></blockquote><ul><li>a<br>b</li></ul>'
        '<pre><code>x</code></pre><p><a href="x">l</a><img src="a.png"></p>'
        '<table><tr><td>c</td></tr></table>'
    )
    assert set(walk(root)) <= set(NODE_TYPES)
