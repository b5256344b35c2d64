#!/usr/bin/env python3
"""Command-line interface for notebook ink files.

Subcommands:
    recognize  Send pages to the recognition service and print the text
    render     Rasterize pages to PNG files
    strokes    Dump decoded strokes as JSON
    payload    Print the recognition request body without sending it

Pages are chosen with ``--page``: -1 for every page (default), 0 for the
page that was last open on the device, N for page N (1-based).

Usage:
    python ink_cli.py recognize notes.rmdoc --type math -a
    python ink_cli.py render notes.rmdoc --page 2 -o out/
    python ink_cli.py strokes page.rm --pretty -o page.json
    python ink_cli.py payload notes.zip --page 0

Exit status is 0 on success, 1 when the input cannot be read or a
recognition request fails, and 2 for usage errors.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys

from ink_archive import UnreadableDocumentError, UnsupportedFileError, load_document
from ink_config import DEFAULT_BATCH_SIZE, DEFAULT_CONTENT_TYPE, DEFAULT_LANG, OUTPUT_WIDTH
from ink_dataclasses import Page, PenType, StrokeDocument
from ink_pages import PageOutOfRangeError, parse_page_option, select_pages
from ink_recognition import (
    CONTENT_TYPES,
    MissingCredentialsError,
    RecognitionClient,
    build_batch_input,
    recognize_pages,
)
from ink_rendering import render_page_png

logger = logging.getLogger(__name__)


def _page_number(value: str) -> int:
    number = int(value)
    if number < -1:
        raise argparse.ArgumentTypeError(f"invalid page number: {value}")
    return number


def _create_argument_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog='rm-ink',
        description='Recognize, render and inspect notebook ink files'
    )
    parser.add_argument('--log-level', default='WARNING',
                        help='Logging level (default: WARNING)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    def add_file_and_page(sub):
        sub.add_argument('file', help='Notebook archive (.zip, .rmdoc) or page (.rm)')
        sub.add_argument('--page', type=_page_number, default=-1,
                         help='-1 all pages (default), 0 last opened, N page N')

    content_types = sorted(CONTENT_TYPES)

    recognize = subparsers.add_parser('recognize', help='Recognize handwriting')
    add_file_and_page(recognize)
    recognize.add_argument('--type', type=str.lower, choices=content_types,
                           default=DEFAULT_CONTENT_TYPE,
                           help=f'Content type (default: {DEFAULT_CONTENT_TYPE})')
    recognize.add_argument('--lang', default=DEFAULT_LANG,
                           help=f'Language culture (default: {DEFAULT_LANG})')
    recognize.add_argument('-a', '--add-pages', action='store_true',
                           help='Add page headers to stdout output')
    recognize.add_argument('-b', '--batch-size', type=int, default=DEFAULT_BATCH_SIZE,
                           help=f'Concurrent requests (default: {DEFAULT_BATCH_SIZE})')
    recognize.add_argument('-o', '--output', default='-',
                           help="Output file stem, '-' for stdout (default)")

    render = subparsers.add_parser('render', help='Render pages to PNG')
    add_file_and_page(render)
    render.add_argument('--width', type=int, default=OUTPUT_WIDTH,
                        help=f'Output width in pixels (default: {OUTPUT_WIDTH})')
    render.add_argument('-o', '--output', default='.',
                        help='Output directory (default: current directory)')

    strokes = subparsers.add_parser('strokes', help='Dump decoded strokes as JSON')
    add_file_and_page(strokes)
    strokes.add_argument('-o', '--output', default=None,
                         help='Output file (default: stdout)')
    strokes.add_argument('--pretty', action='store_true', help='Pretty-print JSON')

    payload = subparsers.add_parser('payload', help='Print recognition requests')
    add_file_and_page(payload)
    payload.add_argument('--type', type=str.lower, choices=content_types,
                         default=DEFAULT_CONTENT_TYPE)
    payload.add_argument('--lang', default=DEFAULT_LANG)

    return parser


def _load_and_select(args) -> tuple[StrokeDocument, list[int]]:
    document = load_document(args.file)
    indices = select_pages(document, parse_page_option(args.page))
    logger.info("%s: %d page(s), selected %s", args.file, document.page_count, indices)
    return document, indices


def _stroke_to_json(stroke) -> dict:
    return {
        'x': [p.x for p in stroke.points],
        'y': [p.y for p in stroke.points],
        'pressure': [p.pressure for p in stroke.points],
        'speed': [p.speed for p in stroke.points],
        'width': [p.width for p in stroke.points],
        'direction': [p.direction for p in stroke.points],
        'brushType': stroke.brush_code,
        'brushColor': stroke.color,
        'brushSize': stroke.brush_size,
        'penType': stroke.pen_type.value,
        'pointerType': 'ERASER' if stroke.pen_type is PenType.ERASER else 'PEN',
    }


def page_to_json(page: Page) -> dict:
    """Serializable form of a page; erase-area and empty strokes are skipped."""
    return {
        'layers': [
            {'strokes': [_stroke_to_json(s) for s in layer.strokes
                         if s.pen_type is not PenType.ERASE_AREA and s.points]}
            for layer in page.layers
        ]
    }


def _process_recognize_command(args) -> int:
    client = RecognitionClient.from_env()
    document, indices = _load_and_select(args)
    results = recognize_pages(document, indices, client, args.type, args.lang,
                              batch_size=args.batch_size)

    if args.output == '-':
        for result in results:
            if args.add_pages:
                print(f"=== Page {result.page_index + 1} ===")
            print(result.text)
    else:
        path = args.output + '.txt'
        with open(path, 'w', encoding='utf-8') as f:
            for result in results:
                f.write(result.text)
                f.write('\n')
        print(f"Saved to {path}", file=sys.stderr)

    failed = [r.page_index + 1 for r in results if not r.ok]
    if failed:
        print(f"Recognition failed for page(s): {failed}", file=sys.stderr)
        return 1
    return 0


def _process_render_command(args) -> int:
    document, indices = _load_and_select(args)
    os.makedirs(args.output, exist_ok=True)
    stem = os.path.splitext(os.path.basename(args.file))[0]
    for index in indices:
        path = os.path.join(args.output, f"{stem}_page_{index + 1}.png")
        with open(path, 'wb') as f:
            f.write(render_page_png(document.pages[index], target_width=args.width))
        print(f"Saved {path}")
    return 0


def _process_strokes_command(args) -> int:
    document, indices = _load_and_select(args)
    data = {
        'version': document.version,
        'documentId': document.document_id,
        'pages': [dict(page=i + 1, **page_to_json(document.pages[i])) for i in indices],
    }
    text = json.dumps(data, indent=2 if args.pretty else None)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(text)
    else:
        print(text)

    selected = dataclasses.replace(document, pages=tuple(document.pages[i] for i in indices))
    layer_count = sum(len(page.layers) for page in selected.pages)
    print(f"Extracted {selected.stroke_count} strokes ({selected.point_count} points) "
          f"from {layer_count} layers across {selected.page_count} page(s)", file=sys.stderr)
    return 0


def _process_payload_command(args) -> int:
    document, indices = _load_and_select(args)
    for index in indices:
        print(json.dumps(build_batch_input(document.pages[index], args.type, args.lang)))
    return 0


_COMMANDS = {
    'recognize': _process_recognize_command,
    'render': _process_render_command,
    'strokes': _process_strokes_command,
    'payload': _process_payload_command,
}


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point.

    Returns:
        Process exit status.
    """
    from ink_flask import configure_logging

    parser = _create_argument_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)

    try:
        return _COMMANDS[args.command](args)
    except (UnreadableDocumentError, UnsupportedFileError, PageOutOfRangeError,
            MissingCredentialsError, OSError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
