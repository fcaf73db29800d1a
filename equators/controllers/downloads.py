"""Controllers for the download history of site users."""

import logging
from http import HTTPStatus
from typing import Any, Dict

from werkzeug.exceptions import NotFound

from .. import domain
from ..services import datastore
from .util import ResponseData, FieldErrors, require_json, isoformat

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


def track_download(user_id: str, payload: Any) -> ResponseData:
    """
    Record a download by a user.

    ``product_id`` and ``product_name`` are required; ``file_size`` (bytes)
    and ``version`` are optional.
    """
    payload = require_json(payload)
    errors = FieldErrors()
    for field in ('product_id', 'product_name'):
        value = payload.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.add(field, 'This field is required')
    file_size = payload.get('file_size')
    if file_size is not None and (isinstance(file_size, bool)
                                  or not isinstance(file_size, int)
                                  or file_size < 0):
        errors.add('file_size', 'Must be a whole number of bytes')
    version = payload.get('version')
    if version is not None and not isinstance(version, str):
        errors.add('version', 'Must be a string')
    if errors:
        return errors.response()

    try:
        log = datastore.record_download(
            user_id,
            payload['product_id'].strip(),
            payload['product_name'].strip(),
            file_size=file_size,
            version=version
        )
    except datastore.NoSuchUser as e:
        raise NotFound('No such user') from e
    logger.debug('User %s downloaded %s', user_id, log.product_id)
    return {'download': download_data(log)}, HTTPStatus.CREATED, {}


def get_history(user_id: str) -> ResponseData:
    """Get the most recent downloads of a user."""
    downloads = datastore.get_downloads(user_id, limit=HISTORY_LIMIT)
    data = {
        'downloads': [download_data(log) for log in downloads],
        'total': datastore.count_downloads(user_id)
    }
    return data, HTTPStatus.OK, {}


def download_data(log: domain.DownloadLog) -> Dict[str, Any]:
    """Render a download for a JSON response."""
    return {
        'id': log.log_id,
        'product_id': log.product_id,
        'product_name': log.product_name,
        'file_size': log.file_size,
        'version': log.version,
        'downloaded_at': isoformat(log.downloaded_at)
    }
