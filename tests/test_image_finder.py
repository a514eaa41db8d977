from publisher.image_finder import find_image_path, find_local_images


def test_relative_to_markdown_file(tmp_path):
    (tmp_path / 'img').mkdir()
    image = tmp_path / 'img' / 'a.png'
    image.write_bytes(b'x')
    doc = tmp_path / 'doc.md'
    assert find_image_path('img/a.png', markdown_file_path=str(doc)) == str(image)
    assert find_image_path('./img/a.png?raw=1', markdown_file_path=str(doc)) == str(image)


def test_percent_encoded_reference(tmp_path):
    image = tmp_path / 'my pic.png'
    image.write_bytes(b'x')
    assert find_image_path('my%20pic.png', markdown_file_path=str(tmp_path / 'doc.md')) == str(image)


def test_media_folder_fallbacks(tmp_path):
    media = tmp_path / 'media'
    (media / 'shots').mkdir(parents=True)
    (media / 'shots' / 'a.png').write_bytes(b'x')
    (media / 'b.png').write_bytes(b'x')
    doc = str(tmp_path / 'pages' / 'doc.md')

    assert find_image_path('shots/a.png', str(media), doc) == str(media / 'shots' / 'a.png')
    assert find_image_path('elsewhere/b.png', str(media), doc) == str(media / 'b.png')
    assert find_image_path('/b.png', str(media), doc) == str(media / 'b.png')


def test_non_local_sources_are_skipped(tmp_path):
    assert find_image_path('https://example.com/a.png') is None
    assert find_image_path('data:image/png;base64,AAAA') is None


def test_find_local_images(tmp_path):
    (tmp_path / 'a.png').write_bytes(b'x')
    doc = str(tmp_path / 'doc.md')

    result = find_local_images(['a.png', './a.png', 'a.png', 'missing.png'], markdown_file_path=doc)

    assert result.found_paths == {'a.png': str(tmp_path / 'a.png'), './a.png': str(tmp_path / 'a.png')}
    assert result.missing == ['missing.png']
    assert result.files == [str(tmp_path / 'a.png')]
