#!/usr/bin/env python3
"""
Documentation Publisher

Converts a directory of Markdown pages into serialized document trees ready
to be imported by the publishing backend. Relative links between pages become
cross-reference slugs, and local images can be uploaded to the asset store.

  python publish.py ./docs --output ./published
  python publish.py ./docs --output ./published --app-url https://app.example.com
"""

import argparse
import asyncio
import logging
import os
import sys

from publisher.config import (
    ACCESS_TOKEN_ENV, ConversionOptions, UploadConfig, load_options, options_from_env, write_json,
)
from publisher.errors import FrontMatterError
from publisher.markdown_converter import Converter
from publisher.utils import ensure_dir


REPORT_FILE = 'publish-report.md'


def discover_pages(source_dir: str) -> list[str]:
    """Markdown files under source_dir, as sorted docs-relative posix paths."""
    pages = []
    for root, dirs, files in os.walk(source_dir):
        dirs[:] = [d for d in dirs if not d.startswith('.')]
        for name in files:
            if name.lower().endswith('.md'):
                rel_path = os.path.relpath(os.path.join(root, name), source_dir)
                pages.append(rel_path.replace(os.sep, '/'))
    return sorted(pages)


def output_path_for(output_dir: str, rel_path: str) -> str:
    """guide/setup.md -> OUT/guide/setup.json"""
    base, _ = os.path.splitext(rel_path)
    return os.path.join(output_dir, *base.split('/')) + '.json'


def build_options(args) -> ConversionOptions:
    """Config file values, overridden by command-line flags."""
    options = load_options(args.config) if args.config else ConversionOptions()

    if args.slug_prefix:
        options.slug_prefix = args.slug_prefix
    if args.keep_ext:
        options.slug_without_ext = False
    if not options.docs_root:
        options.docs_root = args.source

    if args.app_url:
        options.upload_config = UploadConfig(
            app_url=args.app_url,
            access_token=args.access_token or '',
        )
    upload = options.upload_config
    if upload:
        if args.media_folder:
            upload.media_folder = args.media_folder
        if args.concurrency:
            upload.concurrency = args.concurrency
        if args.cache_file:
            upload.cache_file_path = args.cache_file
    return options_from_env(options)


async def publish_directory(source_dir: str, output_dir: str, options: ConversionOptions) -> dict:
    """Convert every page of source_dir into output_dir. Returns a summary."""
    converter = Converter(options)
    pages = discover_pages(source_dir)
    written = []
    failed = []

    for i, rel_path in enumerate(pages):
        print(f"  [{i+1}/{len(pages)}] {rel_path}...", end='', flush=True)
        source_file = os.path.join(source_dir, *rel_path.split('/'))

        with open(source_file, 'r', encoding='utf-8', errors='replace') as f:
            content = f.read()

        try:
            result = await converter.convert(content, source_file)
        except FrontMatterError as e:
            print(f" ✗ ({e})")
            failed.append((rel_path, str(e)))
            continue

        write_json(result.to_dict(), output_path_for(output_dir, rel_path))
        written.append(rel_path)
        print(" ✓" if result.content is not None else " ✓ (blank)")

    blank_files = [
        os.path.relpath(path, source_dir).replace(os.sep, '/')
        for path in converter.blank_file_paths
    ]
    return {
        'pages': pages,
        'written': written,
        'failed': failed,
        'blank': blank_files,
        'slugs': converter.used_slugs,
        'collisions': converter.context.slug_registry.collisions(),
    }


def generate_report(summary: dict, source: str) -> str:
    """Markdown report of a publishing run."""
    lines = [
        "# Publish Report",
        "",
        f"**Source:** {source}",
        f"**Pages converted:** {len(summary['written'])}",
        f"**Pages failed:** {len(summary['failed'])}",
        f"**Blank pages:** {len(summary['blank'])}",
        f"**Slug collisions:** {len(summary['collisions'])}",
        "",
    ]

    if summary['failed']:
        lines.extend(["## Failed Pages", ""])
        for rel_path, error in summary['failed']:
            lines.append(f"- [ ] `{rel_path}`: {error}")
        lines.append("")

    if summary['blank']:
        lines.extend(["## Blank Pages (no content)", ""])
        for rel_path in summary['blank']:
            lines.append(f"- `{rel_path}`")
        lines.append("")

    if summary['collisions']:
        lines.extend(["## Slug Collisions", ""])
        for slug, paths in summary['collisions'].items():
            lines.append(f"- [ ] `{slug}` <- {', '.join(f'`{p}`' for p in paths)}")
        lines.append("")

    lines.extend(["## Pages Converted", ""])
    for rel_path in summary['written']:
        lines.append(f"- [x] `{rel_path}`")

    lines.append("")
    return '\n'.join(lines)


def run(source_dir: str, output_dir: str, options: ConversionOptions):
    print()
    print("=" * 60)
    print("  Documentation Publisher")
    print("=" * 60)
    print()

    print("[1/3] Validating source directory...")
    if not os.path.isdir(source_dir):
        print(f"  ✗ {source_dir} is not a directory")
        sys.exit(1)
    print(f"  ✓ Found {source_dir}")
    if options.upload_config:
        print(f"  ✓ Uploading images to {options.upload_config.app_url}")

    print()
    print("[2/3] Converting pages...")
    summary = asyncio.run(publish_directory(source_dir, output_dir, options))
    print(f"\n  ✓ Converted {len(summary['written'])}/{len(summary['pages'])} pages")
    if summary['failed']:
        print(f"  ⚠ Failed: {len(summary['failed'])} pages")

    print()
    print("[3/3] Writing report...")
    report_path = os.path.join(output_dir, REPORT_FILE)
    ensure_dir(report_path)
    with open(report_path, 'w', encoding='utf-8') as f:
        f.write(generate_report(summary, source_dir))
    print(f"  ✓ Generated {report_path}")

    print()
    print(f"  Output directory: {os.path.abspath(output_dir)}")
    print(f"  Slugs referenced: {len(summary['slugs'])}")
    print(f"  Slug collisions:  {len(summary['collisions'])}")
    print()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Convert Markdown documentation into publishable document trees',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python publish.py ./docs --output ./published
  python publish.py ./docs --output ./published --slug-prefix v2
  python publish.py ./docs --app-url https://app.example.com --media-folder ./docs/assets
        """,
    )
    parser.add_argument('source', help='Directory containing the Markdown pages')
    parser.add_argument('--output', '-o', default='./output', help='Output directory (default: ./output)')
    parser.add_argument('--config', '-c', default=None, help='YAML or JSON options file')
    parser.add_argument('--slug-prefix', default=None, help='Suffix appended to every cross-reference slug')
    parser.add_argument('--keep-ext', action='store_true', help='Keep file extensions in slugs')
    parser.add_argument('--app-url', default=None, help='Publishing backend URL; enables image upload')
    parser.add_argument('--access-token', default=None,
                        help=f'Upload access token (default: ${ACCESS_TOKEN_ENV})')
    parser.add_argument('--media-folder', default=None, help='Extra folder searched for images')
    parser.add_argument('--concurrency', type=int, default=None, help='Parallel uploads')
    parser.add_argument('--cache-file', default=None, help='Upload cache file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    args = parser.parse_args(argv)
    args.source = os.path.abspath(args.source)
    return args


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    run(args.source, args.output, build_options(args))


if __name__ == '__main__':
    main()
