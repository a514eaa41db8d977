import asyncio
import hashlib
import json
from unittest import mock

import requests

from publisher.uploader import UploadCache, UploadFilesOptions, file_hash, upload_file, upload_files


APP_URL = 'https://app.example.com'


def fake_session(payload=None):
    session = mock.Mock()
    response = mock.Mock()
    response.json.return_value = payload if payload is not None else {'url': '/uploads/a.png'}
    session.post.return_value = response
    return session


def options(paths, cache_file_path=None):
    return UploadFilesOptions(
        app_url=APP_URL, access_token='token', file_paths=[str(p) for p in paths],
        concurrency=2, cache_file_path=cache_file_path,
    )


def test_file_hash(tmp_path):
    path = tmp_path / 'a.png'
    path.write_bytes(b'content')
    assert file_hash(str(path)) == hashlib.sha256(b'content').hexdigest()


def test_upload_file_posts_multipart_and_joins_relative_url(tmp_path):
    path = tmp_path / 'a.png'
    path.write_bytes(b'content')
    session = fake_session()

    url = upload_file(session, APP_URL + '/', str(path))

    assert url == 'https://app.example.com/uploads/a.png'
    endpoint = session.post.call_args.args[0]
    assert endpoint == 'https://app.example.com/api/uploads'
    name, _, content_type = session.post.call_args.kwargs['files']['file']
    assert (name, content_type) == ('a.png', 'image/png')


def test_upload_files(tmp_path):
    path = tmp_path / 'a.png'
    path.write_bytes(b'content')
    session = fake_session({'url': 'https://cdn.example.com/a.png'})

    result = asyncio.run(upload_files(options([path]), session=session))

    assert [(r.file_path, r.url, r.error) for r in result.results] == [
        (str(path), 'https://cdn.example.com/a.png', None),
    ]
    session.close.assert_not_called()


def test_no_files_means_no_requests():
    session = fake_session()
    result = asyncio.run(upload_files(options([]), session=session))
    assert result.results == []
    session.post.assert_not_called()


def test_unchanged_files_are_served_from_cache(tmp_path):
    path = tmp_path / 'a.png'
    path.write_bytes(b'content')
    cache_file = tmp_path / 'cache' / 'uploads.json'

    asyncio.run(upload_files(options([path], str(cache_file)), session=fake_session()))
    cached = json.loads(cache_file.read_text())
    assert cached[str(path)]['url'] == 'https://app.example.com/uploads/a.png'

    session = fake_session()
    result = asyncio.run(upload_files(options([path], str(cache_file)), session=session))
    session.post.assert_not_called()
    assert result.results[0].url == 'https://app.example.com/uploads/a.png'


def test_changed_files_are_uploaded_again(tmp_path):
    path = tmp_path / 'a.png'
    path.write_bytes(b'content')
    cache_file = tmp_path / 'uploads.json'
    asyncio.run(upload_files(options([path], str(cache_file)), session=fake_session()))

    path.write_bytes(b'changed')
    session = fake_session()
    asyncio.run(upload_files(options([path], str(cache_file)), session=session))
    session.post.assert_called_once()


def test_failures_are_reported_per_file(tmp_path):
    good = tmp_path / 'good.png'
    good.write_bytes(b'content')
    session = fake_session()
    session.post.side_effect = requests.ConnectionError('boom')

    result = asyncio.run(upload_files(options([good, tmp_path / 'missing.png']), session=session))

    errors = {r.file_path: r.error for r in result.results}
    assert all(r.url is None for r in result.results)
    assert 'boom' in errors[str(good)]
    assert errors[str(tmp_path / 'missing.png')]


def test_response_without_url_is_an_error(tmp_path):
    path = tmp_path / 'a.png'
    path.write_bytes(b'content')
    result = asyncio.run(upload_files(options([path]), session=fake_session({'id': 1})))
    assert result.results[0].url is None
    assert 'no url' in result.results[0].error


def test_unreadable_cache_is_ignored(tmp_path):
    cache_file = tmp_path / 'uploads.json'
    cache_file.write_text('{not json')
    cache = UploadCache(str(cache_file))
    assert cache.entries == {}
    assert cache.get('a.png', 'hash') is None
