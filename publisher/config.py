"""Conversion options and config-file handling for the publisher."""

import json
import os
from dataclasses import dataclass
from typing import Optional

import yaml

from .utils import ensure_dir


DEFAULT_DOC_ROOT_DIR = 'docs'
DEFAULT_UPLOAD_CONCURRENCY = 5
DEFAULT_DIMENSION_CONCURRENCY = 3
ACCESS_TOKEN_ENV = 'PUBLISH_ACCESS_TOKEN'


@dataclass
class UploadConfig:
    """Where and how local images get uploaded."""
    app_url: str
    access_token: str
    media_folder: Optional[str] = None
    concurrency: Optional[int] = None
    cache_file_path: Optional[str] = None


@dataclass
class ConversionOptions:
    """Options shared by every document converted through one Converter."""
    slug_prefix: Optional[str] = None
    slug_without_ext: bool = True
    upload_config: Optional[UploadConfig] = None
    docs_root: Optional[str] = None  # None -> $DOC_ROOT_DIR, relative to cwd

    def resolve_docs_root(self) -> str:
        """Absolute documentation root used to compute portable slugs."""
        root = self.docs_root or os.environ.get('DOC_ROOT_DIR') or DEFAULT_DOC_ROOT_DIR
        return os.path.abspath(root)


def options_from_dict(data: dict) -> ConversionOptions:
    """Build ConversionOptions from a camelCase config mapping."""
    upload = data.get('upload') or data.get('uploadConfig')
    upload_config = None
    if upload:
        upload_config = UploadConfig(
            app_url=upload['appUrl'],
            access_token=upload.get('accessToken') or '',
            media_folder=upload.get('mediaFolder'),
            concurrency=upload.get('concurrency'),
            cache_file_path=upload.get('cacheFilePath'),
        )

    return ConversionOptions(
        slug_prefix=data.get('slugPrefix'),
        slug_without_ext=data.get('slugWithoutExt', True),
        upload_config=upload_config,
        docs_root=data.get('docsRoot'),
    )


def options_from_env(options: Optional[ConversionOptions] = None) -> ConversionOptions:
    """Fill settings left empty from the environment.

    The upload access token falls back to $PUBLISH_ACCESS_TOKEN so it does
    not have to live in a config file or on the command line.
    """
    options = options or ConversionOptions()
    upload = options.upload_config
    if upload and not upload.access_token:
        upload.access_token = os.environ.get(ACCESS_TOKEN_ENV, '')
    return options


def load_options(path: str) -> ConversionOptions:
    """Load options from a YAML or JSON config file."""
    with open(path, 'r', encoding='utf-8') as f:
        # JSON is a subset of YAML, one loader covers both
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f'Config file {path} must contain a mapping')
    return options_from_env(options_from_dict(data))


def write_json(data, output_path: str):
    """Write a JSON document to disk."""
    ensure_dir(output_path)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
