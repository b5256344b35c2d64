"""Integration tests for notebook container loading (ink_archive.py).

Builds zipped notebooks in memory and on disk and loads them end to end
through the page decoders.
"""

import io
import json
import os
import sys
import tempfile
import unittest
import zipfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent))

from builders import build_archive, build_legacy, build_v6, pack_stroke_v6
from ink_archive import (
    UnreadableDocumentError,
    UnsupportedFileError,
    load_archive,
    load_document,
    load_page_bytes,
    load_upload,
    write_png_bundle,
)

pytestmark = pytest.mark.integration

PAGE = build_v6([pack_stroke_v6([(10.0, 10.0), (20.0, 20.0), (30.0, 10.0)])])
TWO_STROKE_PAGE = build_v6([pack_stroke_v6([(1.0, 1.0), (2.0, 2.0)])
                            + pack_stroke_v6([(5.0, 5.0), (6.0, 6.0)])])


class TestLoadArchive(unittest.TestCase):
    """Tests for load_archive."""

    def test_pages_in_manifest_order(self):
        data = build_archive([('b', TWO_STROKE_PAGE), ('a', PAGE)], doc_id='notes')
        document = load_archive(data)

        self.assertEqual(document.document_id, 'notes')
        self.assertEqual(document.page_count, 2)
        self.assertEqual([p.stroke_count for p in document.pages], [2, 1])
        self.assertEqual(document.version, 6)
        self.assertIsNone(document.last_opened)

    def test_last_opened_page(self):
        data = build_archive([('p1', PAGE), ('p2', PAGE), ('p3', PAGE)], last_opened='p3')
        self.assertEqual(load_archive(data).last_opened, 2)

    def test_unknown_last_opened_id(self):
        data = build_archive([('p1', PAGE)], last_opened='nope')
        self.assertIsNone(load_archive(data).last_opened)

    def test_missing_page_blob_is_skipped(self):
        data = build_archive([('p1', PAGE), ('p2', None), ('p3', TWO_STROKE_PAGE)],
                             last_opened='p3')
        with self.assertLogs('ink_archive', level='WARNING') as logs:
            document = load_archive(data)

        self.assertEqual(document.page_count, 2)
        self.assertEqual(document.last_opened, 1)
        self.assertIn('p2', logs.output[0])

    def test_undecodable_page_is_skipped(self):
        data = build_archive([('p1', b'not a page at all'), ('p2', PAGE)], last_opened='p1')
        with self.assertLogs('ink_archive', level='WARNING'):
            document = load_archive(data)

        self.assertEqual(document.page_count, 1)
        self.assertIsNone(document.last_opened)

    def test_legacy_manifest(self):
        data = build_archive([('0', PAGE), ('1', TWO_STROKE_PAGE)], legacy_manifest=True,
                             last_opened=1)
        document = load_archive(data)
        self.assertEqual(document.page_count, 2)
        self.assertEqual(document.last_opened, 1)

    def test_legacy_pages_in_archive(self):
        legacy = build_legacy(5, [[(15, 0, 2.0, [(1.0, 1.0), (2.0, 2.0)])]])
        document = load_archive(build_archive([('p1', legacy)]))
        self.assertEqual(document.version, 5)
        self.assertEqual(document.stroke_count, 1)

    def test_index_named_blob_fallback(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, 'w') as archive:
            archive.writestr('doc.content', json.dumps({'pages': ['uuid-a']}))
            archive.writestr('doc/0.rm', PAGE)
        self.assertEqual(load_archive(buf.getvalue()).page_count, 1)

    def test_empty_page_is_kept(self):
        data = build_archive([('p1', PAGE), ('p2', build_v6([b'']))])
        document = load_archive(data)
        self.assertEqual(document.page_count, 2)
        self.assertFalse(document.pages[1].has_strokes)

    def test_wrongly_typed_last_opened_is_ignored(self):
        manifests = [
            {'cPages': {'pages': [{'id': 'p1'}], 'lastOpened': 'p1'}},
            {'cPages': {'pages': [{'id': 'p1'}], 'lastOpened': ['p1']}},
            {'pages': ['p1'], 'lastOpenedPage': True},
            {'pages': ['p1'], 'lastOpenedPage': '0'},
        ]
        for manifest in manifests:
            with self.subTest(manifest=manifest):
                data = _zip({'d.content': json.dumps(manifest), 'd/p1.rm': PAGE})
                document = load_archive(data)
                self.assertEqual(document.page_count, 1)
                self.assertIsNone(document.last_opened)

    def test_wrongly_typed_page_list_is_unreadable(self):
        for manifest in ({'cPages': {'pages': 7}}, {'pages': 'p1'}, {'pages': 3}):
            with self.subTest(manifest=manifest):
                data = _zip({'d.content': json.dumps(manifest), 'd/p1.rm': PAGE})
                with self.assertRaises(UnreadableDocumentError):
                    load_archive(data)

    def test_errors(self):
        cases = {
            'not a zip': b'plain bytes',
            'no manifest': _zip({'doc/p1.rm': PAGE}),
            'bad json': _zip({'d.content': b'{not json'}),
            'json not object': _zip({'d.content': b'[1, 2]'}),
            'no pages': build_archive([('p1', None)]),
        }
        for name, data in cases.items():
            with self.subTest(name):
                with self.assertRaises(UnreadableDocumentError):
                    load_archive(data)


def _zip(entries):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w') as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buf.getvalue()


class TestLoadDocument(unittest.TestCase):
    """Tests for path-based loading and upload sniffing."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write(self, name, data):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def test_rmdoc_and_zip(self):
        data = build_archive([('p1', PAGE), ('p2', PAGE)])
        for name in ('notes.rmdoc', 'notes.ZIP'):
            with self.subTest(name=name):
                self.assertEqual(load_document(self._write(name, data)).page_count, 2)

    def test_single_page_file(self):
        document = load_document(self._write('page.rm', PAGE))
        self.assertEqual(document.page_count, 1)
        self.assertEqual(document.stroke_count, 1)

    def test_legacy_page_file_uses_file_stem_as_id(self):
        legacy = build_legacy(3, [[(2, 0, 2.0, [(1.0, 1.0)])]])
        document = load_document(self._write('old-page.rm', legacy))
        self.assertEqual(document.document_id, 'old-page')

    def test_unsupported_extension(self):
        with self.assertRaises(UnsupportedFileError):
            load_document(self._write('notes.pdf', b'%PDF'))

    def test_missing_file(self):
        with self.assertRaises(OSError):
            load_document(os.path.join(self.tmpdir.name, 'missing.rm'))

    def test_unreadable_page_file(self):
        with self.assertRaises(UnreadableDocumentError):
            load_document(self._write('bad.rm', b'\x00' * 100))

    def test_upload_sniffs_zip_regardless_of_name(self):
        data = build_archive([('p1', PAGE), ('p2', PAGE)])
        self.assertEqual(load_upload(data, 'upload.rm').page_count, 2)
        self.assertEqual(load_upload(PAGE, 'page.rm').page_count, 1)

    def test_load_page_bytes_keeps_embedded_id(self):
        document = load_page_bytes(PAGE, document_id='ignored')
        self.assertEqual(document.document_id, '12345678-1234-5678-1234-567812345678')


class TestWritePngBundle(unittest.TestCase):

    def test_entries_named_by_index(self):
        bundle = write_png_bundle({2: b'two', 0: b'zero'})
        with zipfile.ZipFile(io.BytesIO(bundle)) as archive:
            self.assertEqual(archive.namelist(), ['page_0.png', 'page_2.png'])
            self.assertEqual(archive.read('page_2.png'), b'two')


def test_fixture_archive(archive_bytes):
    document = load_archive(archive_bytes)
    assert document.page_count == 3
    assert document.last_opened == 1
    assert document.pages[2].has_strokes is False


if __name__ == '__main__':
    unittest.main()
