"""Tests for the projects and health controllers."""

import os
from io import BytesIO
from http import HTTPStatus
from unittest import mock

from werkzeug.datastructures import FileStorage, MultiDict
from werkzeug.exceptions import NotFound

from ...auth.sessions import SessionStore
from ...services import datastore
from .. import projects, health
from .util import ControllerTestCase


class TestProjects(ControllerTestCase):
    """Tests for :mod:`.controllers.projects`."""

    def _create(self, title='Foo Tool', category='desktop',
                filename='../foo tool.zip'):
        form = MultiDict({'title': title, 'description': f'About {title}',
                          'category': category,
                          'tech_stack': 'Python, Flask, ,', 'version': '1.0'})
        upload = FileStorage(stream=BytesIO(b'PK\x03\x04 not really a zip'),
                             filename=filename)
        data, code, _ = projects.create_project(self.user_id, form, upload)
        self.assertEqual(code, HTTPStatus.CREATED, data)
        return data['project']

    def test_create(self):
        """The file is stored under a unique, safe name."""
        project = self._create()
        self.assertEqual(project['tech_stack'], ['Python', 'Flask'])
        self.assertEqual(project['file_name'], 'foo_tool.zip')
        self.assertEqual(project['file_size'], 21)
        stored = datastore.load_project(project['id'])
        self.assertNotEqual(stored.filename, stored.original_name)
        self.assertTrue(stored.filename.endswith('_foo_tool.zip'))
        self.assertTrue(os.path.isfile(
            os.path.join(self.upload_folder, stored.filename)
        ))

    def test_create_invalid(self):
        """Title, description, category and a file are required."""
        data, code, _ = projects.create_project(self.user_id, MultiDict(),
                                                None)
        self.assertEqual(code, HTTPStatus.BAD_REQUEST)
        fields = {error['field'] for error in data['errors']}
        self.assertEqual(fields, {'title', 'description', 'category', 'file'})
        self.assertEqual(os.listdir(self.upload_folder), [])

    def test_list(self):
        """Projects are paged, and can be filtered."""
        for i in range(3):
            self._create(title=f'Tool {i}')
        self._create(title='Space Game', category='games')

        data, _, _ = projects.list_projects(MultiDict({'limit': '2'}))
        self.assertEqual(data['total'], 4)
        self.assertEqual(data['pages'], 2)
        self.assertEqual(len(data['projects']), 2)

        data, _, _ = projects.list_projects(MultiDict({'category': 'games'}))
        self.assertEqual([p['title'] for p in data['projects']],
                         ['Space Game'])

        data, _, _ = projects.list_projects(MultiDict({'search': 'space'}))
        self.assertEqual(data['total'], 1)

        data, _, _ = projects.list_projects(MultiDict({'limit': '1000',
                                                       'page': '-3'}))
        self.assertEqual(data['page'], 1)
        self.assertEqual(len(data['projects']), 4)

    def test_download(self):
        """Downloads are counted, and tracked for signed-in users."""
        project = self._create()
        data, code, _ = projects.download_project(project['id'])
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['download_name'], 'foo_tool.zip')
        self.assertEqual(data['directory'], self.upload_folder)

        projects.download_project(project['id'], user_id=self.user_id)
        self.assertEqual(datastore.load_project(project['id']).downloads, 2)
        history = datastore.get_downloads(self.user_id)
        self.assertEqual([d.product_id for d in history], [project['id']])

    def test_missing_file(self):
        """A project whose file is gone cannot be downloaded."""
        project = self._create()
        stored = datastore.load_project(project['id'])
        os.remove(os.path.join(self.upload_folder, stored.filename))
        with self.assertRaises(NotFound):
            projects.download_project(project['id'])
        self.assertEqual(datastore.load_project(project['id']).downloads, 0)

    def test_not_found(self):
        """Unknown projects are not found."""
        with self.assertRaises(NotFound):
            projects.get_project('nope')
        with self.assertRaises(NotFound):
            projects.download_project('nope')


class TestHealth(ControllerTestCase):
    """Tests for :mod:`.controllers.health`."""

    def test_healthy(self):
        """Both stores are reachable."""
        data, code, _ = health.health_check()
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data, {'status': 'ok', 'database': True,
                                'session_store': True})

    def test_degraded(self):
        """An unreachable session store degrades the service."""
        with mock.patch.object(SessionStore.current_session(),
                               'is_available', return_value=False):
            data, code, _ = health.health_check()
        self.assertEqual(code, HTTPStatus.SERVICE_UNAVAILABLE)
        self.assertEqual(data['status'], 'degraded')
        self.assertFalse(data['session_store'])
