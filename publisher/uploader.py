"""Upload local files to the publishing backend's asset store."""

import asyncio
import hashlib
import json
import logging
import mimetypes
import os
import tempfile
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin

import requests

from .config import DEFAULT_UPLOAD_CONCURRENCY
from .errors import UploadError


logger = logging.getLogger(__name__)

UPLOAD_ENDPOINT = 'api/uploads'
UPLOAD_TIMEOUT = 60


@dataclass
class UploadResult:
    file_path: str
    url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class UploadFilesResult:
    results: list = field(default_factory=list)


@dataclass
class UploadFilesOptions:
    app_url: str
    access_token: str
    file_paths: list = field(default_factory=list)
    concurrency: Optional[int] = None
    cache_file_path: Optional[str] = None


def file_hash(path: str) -> str:
    """SHA-256 of a file's content."""
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()


class UploadCache:
    """Persisted path -> {hash, url} map so unchanged files are not re-uploaded."""

    def __init__(self, cache_file_path: Optional[str] = None):
        self.cache_file_path = cache_file_path
        self.entries: dict = {}
        self.dirty = False
        if cache_file_path and os.path.isfile(cache_file_path):
            self._load()

    def _load(self):
        try:
            with open(self.cache_file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning('Ignoring unreadable upload cache %s: %s', self.cache_file_path, e)
            return
        if isinstance(data, dict):
            self.entries = data

    def get(self, path: str, digest: str) -> Optional[str]:
        entry = self.entries.get(path)
        if isinstance(entry, dict) and entry.get('hash') == digest:
            return entry.get('url')
        return None

    def set(self, path: str, digest: str, url: str):
        self.entries[path] = {'hash': digest, 'url': url}
        self.dirty = True

    def save(self):
        """Write the cache atomically (temp file + rename)."""
        if not self.cache_file_path or not self.dirty:
            return
        directory = os.path.dirname(os.path.abspath(self.cache_file_path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self.entries, f, indent=2)
            os.replace(tmp_path, self.cache_file_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        self.dirty = False


def create_session(access_token: str) -> requests.Session:
    """Create an HTTP session authorized against the asset store."""
    session = requests.Session()
    session.headers.update({
        'Authorization': f'Bearer {access_token}',
        'User-Agent': 'publish-docs',
        'Accept': 'application/json',
    })
    return session


def upload_file(session: requests.Session, app_url: str, file_path: str) -> str:
    """Upload one file and return its public URL."""
    endpoint = urljoin(app_url.rstrip('/') + '/', UPLOAD_ENDPOINT)
    content_type = mimetypes.guess_type(file_path)[0] or 'application/octet-stream'

    with open(file_path, 'rb') as f:
        resp = session.post(
            endpoint,
            files={'file': (os.path.basename(file_path), f, content_type)},
            timeout=UPLOAD_TIMEOUT,
        )
    resp.raise_for_status()

    try:
        payload = resp.json()
    except ValueError as e:
        raise UploadError(f'Upload of {file_path} returned invalid JSON') from e

    url = payload.get('url') if isinstance(payload, dict) else None
    if not url:
        raise UploadError(f'Upload of {file_path} returned no url')
    # The store may answer with a path relative to the app
    return urljoin(app_url.rstrip('/') + '/', url)


async def upload_files(options: UploadFilesOptions,
                       session: Optional[requests.Session] = None) -> UploadFilesResult:
    """Upload files with bounded concurrency, skipping ones cached as unchanged.

    A failing file is reported in its UploadResult; it never aborts the others.
    """
    if not options.file_paths:
        return UploadFilesResult()

    own_session = session is None
    session = session or create_session(options.access_token)
    cache = UploadCache(options.cache_file_path)
    semaphore = asyncio.Semaphore(options.concurrency or DEFAULT_UPLOAD_CONCURRENCY)

    async def upload_one(file_path: str) -> UploadResult:
        async with semaphore:
            try:
                digest = await asyncio.to_thread(file_hash, file_path)
                cached_url = cache.get(file_path, digest)
                if cached_url:
                    logger.debug('Using cached upload for %s', file_path)
                    return UploadResult(file_path=file_path, url=cached_url)

                url = await asyncio.to_thread(upload_file, session, options.app_url, file_path)
                cache.set(file_path, digest, url)
                return UploadResult(file_path=file_path, url=url)
            except (OSError, requests.RequestException, UploadError) as e:
                logger.warning('Failed to upload %s: %s', file_path, e)
                return UploadResult(file_path=file_path, error=str(e))

    try:
        results = await asyncio.gather(*(upload_one(path) for path in options.file_paths))
    finally:
        cache.save()
        if own_session:
            session.close()

    return UploadFilesResult(results=list(results))
