"""Shared setup for controller tests."""

import os
import shutil
import tempfile
from unittest import TestCase, mock

from ... import domain
from ...auth import passwords
from ...factory import create_web_app
from ...services import datastore


class ControllerTestCase(TestCase):
    """Runs each test in a request context, with a fresh database."""

    password = 'thepassword'

    def setUp(self):
        self.upload_folder = tempfile.mkdtemp()
        with mock.patch.dict(os.environ, {
                    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
                    'REDIS_FAKE': '1',
                    'UPLOAD_FOLDER': self.upload_folder,
                    'ADMIN_EMAILS': 'boss@equators.com'
                }):
            self.app = create_web_app()
        self.ctx = self.app.test_request_context()
        self.ctx.push()
        datastore.create_all()
        self.user = datastore.create_user(
            domain.User(username='foouser', email='foo@bar.com',
                        name='Foo User'),
            passwords.hash_password(self.password)
        )
        self.user_id = str(self.user.user_id)

    def tearDown(self):
        datastore.drop_all()
        self.ctx.pop()
        shutil.rmtree(self.upload_folder, ignore_errors=True)
