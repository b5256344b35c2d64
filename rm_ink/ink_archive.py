"""Notebook container loading and PNG bundling.

A notebook export is a zip archive (``.zip`` or ``.rmdoc``) holding a JSON
manifest named ``<docid>.content`` plus one ``<docid>/<pageid>.rm`` blob per
page. This module reads the manifest, decodes each page blob with
ink_decoder.decode_page() and assembles a single multi-page StrokeDocument.
A bare ``.rm`` page file is loaded as a one-page document.

Two manifest layouts are understood:

    {"cPages": {"pages": [{"id": ...}], "lastOpened": {"value": <id>}}}
    {"pages": [<id>, ...], "lastOpenedPage": <index>}

Page blobs that are missing or fail to decode are logged and skipped. The
last-opened index is remapped onto the pages that survived, and is None
when the last-opened page itself was skipped.

Typical usage:
    from ink_archive import load_document

    document = load_document('notes.rmdoc')
    print(document.page_count, document.last_opened)
"""

from __future__ import annotations

import io
import json
import logging
import os
import posixpath
import zipfile

from ink_dataclasses import Page, StrokeDocument, StructuralFailure
from ink_decoder import decode_page

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSIONS = ('.zip', '.rmdoc')
PAGE_EXTENSION = '.rm'
MANIFEST_EXTENSION = '.content'


class UnreadableDocumentError(ValueError):
    """The input could not be turned into a document with at least one page."""


class UnsupportedFileError(ValueError):
    """The file extension is not a known notebook format."""


def _list_field(obj: dict, key: str) -> list:
    value = obj.get(key)
    return value if isinstance(value, list) else []


def _manifest_pages(manifest: dict) -> tuple[list[str], int | None]:
    """Return (page ids in display order, manifest index of last-opened page).

    Fields of the wrong JSON type are treated as absent.
    """
    c_pages = manifest.get('cPages')
    if isinstance(c_pages, dict):
        page_ids = [entry['id'] for entry in _list_field(c_pages, 'pages')
                    if isinstance(entry, dict) and isinstance(entry.get('id'), str)
                    and entry['id']]
        last_opened = c_pages.get('lastOpened')
        last_id = last_opened.get('value') if isinstance(last_opened, dict) else None
        last_index = page_ids.index(last_id) if last_id in page_ids else None
        return page_ids, last_index

    page_ids = [page_id for page_id in _list_field(manifest, 'pages') if isinstance(page_id, str)]
    last_index = manifest.get('lastOpenedPage')
    if not isinstance(last_index, int) or isinstance(last_index, bool):
        last_index = None
    return page_ids, last_index


def _find_manifest(archive: zipfile.ZipFile) -> str:
    for name in archive.namelist():
        if name.endswith(MANIFEST_EXTENSION):
            return name
    raise UnreadableDocumentError("no .content file found in archive")


def _read_entry(archive: zipfile.ZipFile, names: set[str], *candidates: str) -> bytes | None:
    for name in candidates:
        if name in names:
            return archive.read(name)
    return None


def _load_zip(archive: zipfile.ZipFile) -> StrokeDocument:
    manifest_name = _find_manifest(archive)
    document_id = posixpath.basename(manifest_name)[:-len(MANIFEST_EXTENSION)]
    prefix = posixpath.dirname(manifest_name)

    try:
        manifest = json.loads(archive.read(manifest_name))
    except ValueError as e:
        raise UnreadableDocumentError(f"can't parse content file: {e}") from e
    if not isinstance(manifest, dict):
        raise UnreadableDocumentError("content file is not a JSON object")

    page_ids, last_index = _manifest_pages(manifest)
    names = set(archive.namelist())

    pages: list[Page] = []
    versions: list[int] = []
    last_opened = None
    for manifest_index, page_id in enumerate(page_ids):
        page_dir = posixpath.join(prefix, document_id)
        blob = _read_entry(archive, names,
                           f"{page_dir}/{page_id}{PAGE_EXTENSION}",
                           f"{page_dir}/{manifest_index}{PAGE_EXTENSION}")
        if blob is None:
            logger.warning("Page file not found: %s/%s%s", page_dir, page_id, PAGE_EXTENSION)
            continue

        result = decode_page(blob)
        if isinstance(result, StructuralFailure):
            logger.warning("Can't parse page %s: %s", page_id, result.reason)
            continue

        if manifest_index == last_index:
            last_opened = len(pages)
        pages.extend(result.pages)
        versions.append(result.version)

    if not pages:
        raise UnreadableDocumentError("no pages found in archive")

    logger.info("Loaded document %s: %d of %d page(s) decoded",
                document_id, len(pages), len(page_ids))
    return StrokeDocument(
        version=versions[0],
        document_id=document_id,
        pages=tuple(pages),
        last_opened=last_opened,
    )


def load_archive(source) -> StrokeDocument:
    """Load a zipped notebook.

    Args:
        source: Path to the archive, or its raw bytes.

    Raises:
        UnreadableDocumentError: Not a zip, no or bad manifest, or no page
            could be decoded.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(bytes(source))
    try:
        with zipfile.ZipFile(source) as archive:
            return _load_zip(archive)
    except zipfile.BadZipFile as e:
        raise UnreadableDocumentError(f"can't open as zip: {e}") from e


def load_page_bytes(data: bytes, document_id: str = '') -> StrokeDocument:
    """Load a single page blob as a one-page document.

    Raises:
        UnreadableDocumentError: The blob is not a readable page.
    """
    result = decode_page(data)
    if isinstance(result, StructuralFailure):
        raise UnreadableDocumentError(f"can't parse page: {result.reason}")
    if document_id and not result.document_id:
        return StrokeDocument(result.version, document_id, result.pages, result.last_opened)
    return result


def load_page_file(path: str) -> StrokeDocument:
    with open(path, 'rb') as f:
        data = f.read()
    stem = os.path.splitext(os.path.basename(path))[0]
    return load_page_bytes(data, document_id=stem)


def load_document(path: str) -> StrokeDocument:
    """Load a notebook file, dispatching on its extension.

    Raises:
        UnsupportedFileError: Extension is not .zip, .rmdoc or .rm.
        UnreadableDocumentError: The file content could not be decoded.
        OSError: The file could not be read.
    """
    ext = os.path.splitext(path)[1].lower()
    if ext in ARCHIVE_EXTENSIONS:
        return load_archive(path)
    if ext == PAGE_EXTENSION:
        return load_page_file(path)
    raise UnsupportedFileError(f"unsupported file type: {ext or path}")


def load_upload(data: bytes, filename: str = '') -> StrokeDocument:
    """Load uploaded bytes, sniffing zip archives by content.

    Raises:
        UnreadableDocumentError: Neither an archive nor a readable page.
    """
    if zipfile.is_zipfile(io.BytesIO(data)):
        return load_archive(data)
    stem = os.path.splitext(os.path.basename(filename))[0]
    return load_page_bytes(data, document_id=stem)


def write_png_bundle(images: dict[int, bytes]) -> bytes:
    """Zip rendered pages as ``page_<index>.png`` entries.

    Args:
        images: 0-based page index -> PNG bytes.

    Returns:
        The zip archive's bytes.
    """
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w', zipfile.ZIP_DEFLATED) as bundle:
        for index, png in sorted(images.items()):
            bundle.writestr(f"page_{index}.png", png)
    return buf.getvalue()
