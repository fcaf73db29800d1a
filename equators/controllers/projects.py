"""
Controllers for the project portfolio.

Projects are downloadable applications. Uploaded files are kept in
``UPLOAD_FOLDER`` under a unique name, and sent back with the name they were
uploaded with.
"""

import os
import uuid
import logging
from http import HTTPStatus
from typing import Any, Dict, Optional

from flask import current_app
from werkzeug.datastructures import FileStorage, MultiDict
from werkzeug.exceptions import NotFound
from werkzeug.utils import secure_filename

from .. import domain
from ..services import datastore
from .util import ResponseData, FieldErrors, clean_text, isoformat

logger = logging.getLogger(__name__)

PAGE_SIZE = 12
MAX_PAGE_SIZE = 50
TITLE_MAX = 200
DESCRIPTION_MAX = 5000


def list_projects(params: MultiDict) -> ResponseData:
    """Get a page of projects, optionally filtered by category or search."""
    page = max(params.get('page', 1, type=int) or 1, 1)
    limit = params.get('limit', PAGE_SIZE, type=int) or PAGE_SIZE
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    projects, total = datastore.list_projects(
        category=params.get('category') or None,
        search=(params.get('search') or '').strip() or None,
        page=page,
        limit=limit
    )
    data = {
        'projects': [project_data(project) for project in projects],
        'total': total,
        'page': page,
        'pages': (total + limit - 1) // limit
    }
    return data, HTTPStatus.OK, {}


def get_project(project_id: str) -> ResponseData:
    """Get a single project."""
    return {'project': project_data(_load_project(project_id))}, \
        HTTPStatus.OK, {}


def create_project(owner_id: str, form: MultiDict,
                   upload: Optional[FileStorage]) -> ResponseData:
    """
    Add a project to the portfolio.

    Parameters
    ----------
    owner_id : str
    form : MultiDict
        ``title``, ``description`` and ``category`` are required.
        ``tech_stack`` is a comma-separated list; ``version`` is optional.
    upload : :class:`FileStorage`
        The project file.

    """
    errors = FieldErrors()
    title = clean_text(form.get('title'), 'title', errors, TITLE_MAX)
    description = clean_text(form.get('description'), 'description', errors,
                             DESCRIPTION_MAX)
    category = clean_text(form.get('category'), 'category', errors, 50)
    for field, value in (('title', title), ('description', description),
                         ('category', category)):
        if value is None:
            errors.add(field, 'This field is required')
    version = clean_text(form.get('version'), 'version', errors, 50)
    tech_stack = [tech.strip() for tech
                  in (form.get('tech_stack') or '').split(',')
                  if tech.strip()]
    original_name = secure_filename(upload.filename or '') \
        if upload is not None else ''
    if not original_name:
        errors.add('file', 'A file is required')
    if errors:
        return errors.response()

    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    filename = f'{uuid.uuid4().hex}_{original_name}'
    path = os.path.join(folder, filename)
    upload.save(path)
    project_id = datastore.save_project(domain.Project(
        title=title,
        description=description,
        category=category,
        owner_id=owner_id,
        tech_stack=tech_stack,
        filename=filename,
        original_name=original_name,
        file_size=os.path.getsize(path),
        version=version
    ))
    logger.info('User %s added project %s', owner_id, project_id)
    return {'project': project_data(datastore.load_project(project_id))}, \
        HTTPStatus.CREATED, {}


def download_project(project_id: str,
                     user_id: Optional[str] = None) -> ResponseData:
    """
    Count a download of a project, and locate its file.

    If ``user_id`` is given, the download is added to that user's history.

    Returns
    -------
    dict
        ``directory``, ``filename`` and ``download_name`` of the file to send.
    int
    dict

    """
    project = _load_project(project_id)
    folder = current_app.config['UPLOAD_FOLDER']
    if not project.filename \
            or not os.path.isfile(os.path.join(folder, project.filename)):
        logger.error('File for project %s is missing', project_id)
        raise NotFound('The file for this project is not available')

    datastore.increment_downloads(project_id)
    if user_id is not None:
        datastore.record_download(user_id, str(project.project_id),
                                  project.title,
                                  file_size=project.file_size,
                                  version=project.version)
    data = {
        'directory': folder,
        'filename': project.filename,
        'download_name': project.original_name or project.filename
    }
    return data, HTTPStatus.OK, {}


def project_data(project: domain.Project) -> Dict[str, Any]:
    """Render a project for a JSON response."""
    return {
        'id': project.project_id,
        'title': project.title,
        'description': project.description,
        'category': project.category,
        'tech_stack': project.tech_stack,
        'file_name': project.original_name,
        'file_size': project.file_size,
        'version': project.version,
        'downloads': project.downloads,
        'created_at': isoformat(project.created)
    }


def _load_project(project_id: str) -> domain.Project:
    try:
        project = datastore.load_project(project_id)
    except datastore.NoSuchProject as e:
        raise NotFound('No such project') from e
    if project.status != 'active':
        raise NotFound('No such project')
    return project
