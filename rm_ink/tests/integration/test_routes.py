"""Integration tests for the ink server routes (ink_routes.py).

Drives /api/hwr, /api/convert and /health through the Flask test client
with the recognition endpoint mocked by the 'responses' library.
"""

import io
import json
import sys
import zipfile
from pathlib import Path

import pytest
import responses
from PIL import Image

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent))

from ink_config import RECOGNITION_URL, ServerSettings

pytestmark = pytest.mark.integration


def _upload(data, filename='notes.rmdoc', **form):
    form['file'] = (io.BytesIO(data), filename)
    return form


# -----------------------------------------------------------------------------
# /health
# -----------------------------------------------------------------------------

def test_health(flask_client):
    response = flask_client.get('/health')
    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'ok'
    assert body['time'].endswith('+00:00')


# -----------------------------------------------------------------------------
# /api/hwr
# -----------------------------------------------------------------------------

@responses.activate
def test_hwr_all_pages(flask_client, archive_bytes):
    responses.add(responses.POST, RECOGNITION_URL, body='hello', status=200)

    response = flask_client.post('/api/hwr', data=_upload(archive_bytes),
                                 content_type='multipart/form-data')

    assert response.status_code == 200
    body = response.get_json()
    assert body['filename'] == 'notes.rmdoc'
    assert body['pages'] == 3
    # The empty third page still gets a request; every page answers 'hello'
    assert body['text'] == {'0': 'hello', '1': 'hello', '2': 'hello'}
    assert len(responses.calls) == 3


@responses.activate
def test_hwr_last_opened_page(flask_client, archive_bytes):
    responses.add(responses.POST, RECOGNITION_URL, body='x = 1', status=200)

    response = flask_client.post('/api/hwr', data=_upload(archive_bytes, page='0', type='math'),
                                 content_type='multipart/form-data')

    assert response.status_code == 200
    assert response.get_json()['text'] == {'1': 'x = 1'}
    request = responses.calls[0].request
    assert request.headers['Accept'].startswith('application/x-latex')
    assert json.loads(request.body)['contentType'] == 'Math'


@responses.activate
def test_hwr_single_page_file(flask_client, v6_page_bytes):
    responses.add(responses.POST, RECOGNITION_URL, body='{"label": "jiix text"}', status=200)

    response = flask_client.post(
        '/api/hwr', data=_upload(v6_page_bytes, 'page.rm', type='jiix', lang='fr_FR'),
        content_type='multipart/form-data')

    assert response.status_code == 200
    assert response.get_json()['text'] == {'0': 'jiix text'}
    assert json.loads(responses.calls[0].request.body)['configuration'] == {'lang': 'fr_FR'}


@responses.activate
def test_hwr_no_content(flask_client, archive_bytes):
    responses.add(responses.POST, RECOGNITION_URL, body='   ', status=200)

    response = flask_client.post('/api/hwr', data=_upload(archive_bytes, page='3'),
                                 content_type='multipart/form-data')

    assert response.status_code == 404
    assert response.get_json()['error'] == 'No content found'


@responses.activate
def test_hwr_service_failure_is_no_content(flask_client, archive_bytes):
    responses.add(responses.POST, RECOGNITION_URL, body='denied', status=401)

    response = flask_client.post('/api/hwr', data=_upload(archive_bytes),
                                 content_type='multipart/form-data')

    assert response.status_code == 404


@pytest.mark.parametrize('form,status,message', [
    ({}, 400, "Missing 'file' upload"),
    ({'file': (io.BytesIO(b''), 'x.rm')}, 400, 'Uploaded file is empty'),
    ({'file': (io.BytesIO(b'garbage'), 'x.rm')}, 400, 'Error loading document'),
])
def test_hwr_bad_uploads(flask_client, form, status, message):
    response = flask_client.post('/api/hwr', data=form, content_type='multipart/form-data')
    assert response.status_code == status
    assert message in response.get_json()['error']


def test_hwr_bad_type(flask_client, archive_bytes):
    response = flask_client.post('/api/hwr', data=_upload(archive_bytes, type='poetry'),
                                 content_type='multipart/form-data')
    assert response.status_code == 400
    assert 'poetry' in response.get_json()['error']


def test_hwr_bad_page(flask_client, archive_bytes):
    for page in ('abc', '-3'):
        response = flask_client.post('/api/hwr', data=_upload(archive_bytes, page=page),
                                     content_type='multipart/form-data')
        assert response.status_code == 400


def test_hwr_page_out_of_range(flask_client, archive_bytes):
    response = flask_client.post('/api/hwr', data=_upload(archive_bytes, page='9'),
                                 content_type='multipart/form-data')
    assert response.status_code == 400
    assert 'outside range' in response.get_json()['error']


def test_hwr_without_credentials(flask_client, archive_bytes):
    from ink_flask import SETTINGS_KEY, app

    app.config[SETTINGS_KEY] = ServerSettings()
    response = flask_client.post('/api/hwr', data=_upload(archive_bytes),
                                 content_type='multipart/form-data')
    assert response.status_code == 500
    assert 'credentials' in response.get_json()['error']


# -----------------------------------------------------------------------------
# /api/convert
# -----------------------------------------------------------------------------

def test_convert_skips_empty_pages(flask_client, archive_bytes):
    response = flask_client.post('/api/convert', data=_upload(archive_bytes),
                                 content_type='multipart/form-data')

    assert response.status_code == 200
    assert response.mimetype == 'application/zip'
    assert 'notes_pages.zip' in response.headers['Content-Disposition']

    with zipfile.ZipFile(io.BytesIO(response.data)) as bundle:
        assert bundle.namelist() == ['page_0.png', 'page_1.png']
        image = Image.open(io.BytesIO(bundle.read('page_1.png')))
        assert image.format == 'PNG'
        assert image.size[0] == 1404


def test_convert_single_page(flask_client, archive_bytes):
    response = flask_client.post('/api/convert', data=_upload(archive_bytes, page='2'),
                                 content_type='multipart/form-data')

    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.data)) as bundle:
        assert bundle.namelist() == ['page_1.png']


def test_convert_only_empty_pages(flask_client, archive_bytes):
    response = flask_client.post('/api/convert', data=_upload(archive_bytes, page='3'),
                                 content_type='multipart/form-data')

    assert response.status_code == 500
    assert response.get_json()['error'] == 'No pages converted'


def test_convert_errors(flask_client, archive_bytes):
    response = flask_client.post('/api/convert', data={}, content_type='multipart/form-data')
    assert response.status_code == 400

    response = flask_client.post('/api/convert', data=_upload(archive_bytes, page='7'),
                                 content_type='multipart/form-data')
    assert response.status_code == 400


def _notebook(manifest, page_bytes):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w') as bundle:
        bundle.writestr('d.content', json.dumps(manifest))
        bundle.writestr('d/p1.rm', page_bytes)
    return buf.getvalue()


def test_convert_with_malformed_manifest_fields(flask_client, v6_page_bytes):
    data = _notebook({'cPages': {'pages': [{'id': 'p1'}], 'lastOpened': 'p1'}}, v6_page_bytes)
    response = flask_client.post('/api/convert', data=_upload(data),
                                 content_type='multipart/form-data')
    assert response.status_code == 200

    data = _notebook({'cPages': {'pages': 'p1'}}, v6_page_bytes)
    response = flask_client.post('/api/convert', data=_upload(data),
                                 content_type='multipart/form-data')
    assert response.status_code == 400
    assert 'Error loading document' in response.get_json()['error']


def test_convert_does_not_need_credentials(flask_client, v6_page_bytes):
    from ink_flask import SETTINGS_KEY, app

    app.config[SETTINGS_KEY] = ServerSettings()
    response = flask_client.post('/api/convert', data=_upload(v6_page_bytes, 'page.rm'),
                                 content_type='multipart/form-data')
    assert response.status_code == 200
    assert 'page_pages.zip' in response.headers['Content-Disposition']
