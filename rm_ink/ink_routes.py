"""Flask routes for the ink server.

    POST /api/hwr      recognize handwriting, JSON {filename, pages, text}
    POST /api/convert  render pages, zip of page_<index>.png
    GET  /health       liveness probe
"""

import io
import logging
import os
from datetime import datetime, timezone

from flask import jsonify, request, send_file

from ink_archive import write_png_bundle
from ink_config import DEFAULT_BATCH_SIZE, DEFAULT_CONTENT_TYPE, DEFAULT_LANG
from ink_flask import (
    app, get_document_or_error, get_settings, get_upload_or_error, parse_page_param,
)
from ink_pages import PageOutOfRangeError, select_pages
from ink_recognition import RecognitionClient, recognize_pages, resolve_content_type
from ink_rendering import render_pages

logger = logging.getLogger(__name__)


@app.errorhandler(413)
def upload_too_large(e):
    return jsonify(error="Upload too large"), 413


@app.route('/api/hwr', methods=['POST'])
def api_hwr():
    upload, err = get_upload_or_error()
    if err:
        return err
    filename, data = upload

    content_type = request.form.get('type') or DEFAULT_CONTENT_TYPE
    try:
        resolve_content_type(content_type)
    except ValueError as e:
        return jsonify(error=str(e)), 400
    lang = request.form.get('lang') or DEFAULT_LANG

    page_request, err = parse_page_param(request.form.get('page'))
    if err:
        return err

    document, err = get_document_or_error(filename, data)
    if err:
        return err

    settings = get_settings()
    if not settings.has_credentials:
        return jsonify(error="HWR credentials not configured"), 500

    try:
        indices = select_pages(document, page_request)
    except PageOutOfRangeError as e:
        return jsonify(error=str(e)), 400

    client = RecognitionClient(settings.application_key, settings.hmac_key)
    results = recognize_pages(document, indices, client, content_type, lang,
                              batch_size=DEFAULT_BATCH_SIZE)
    text = {str(r.page_index): r.text for r in results if r.ok and r.text}
    if not text:
        return jsonify(error="No content found"), 404

    logger.info("Recognized %d of %d requested page(s) from %s",
                len(text), len(indices), filename)
    return jsonify(filename=filename, pages=document.page_count, text=text)


@app.route('/api/convert', methods=['POST'])
def api_convert():
    upload, err = get_upload_or_error()
    if err:
        return err
    filename, data = upload

    page_request, err = parse_page_param(request.form.get('page'))
    if err:
        return err

    document, err = get_document_or_error(filename, data)
    if err:
        return err

    try:
        indices = select_pages(document, page_request)
    except PageOutOfRangeError as e:
        return jsonify(error=str(e)), 400

    drawn = []
    for index in indices:
        if document.pages[index].has_strokes:
            drawn.append(index)
        else:
            logger.info("Page %d has no strokes, skipping", index)
    if not drawn:
        return jsonify(error="No pages converted"), 500

    pngs = render_pages([document.pages[i] for i in drawn])
    bundle = write_png_bundle(dict(zip(drawn, pngs)))
    logger.info("Converted %d page(s) from %s", len(drawn), filename)

    stem = os.path.splitext(os.path.basename(filename))[0] or 'document'
    return send_file(io.BytesIO(bundle), mimetype='application/zip',
                     as_attachment=True, download_name=f"{stem}_pages.zip")


@app.route('/health')
def health():
    return jsonify(status='ok', time=datetime.now(timezone.utc).isoformat())
