"""
Generate synthetic users and projects for development purposes.

.. warning: DO NOT USE THIS ON A PRODUCTION DATABASE.

"""

import io
import random

import click
from mimesis import Person, Text, Address, Internet, Development
from mimesis.locales import Locale
from werkzeug.datastructures import FileStorage, MultiDict

from equators import domain
from equators.auth import passwords
from equators.controllers import projects
from equators.factory import create_web_app
from equators.services import datastore

CATEGORIES = ['desktop', 'utilities', 'games', 'developer-tools']


@click.command()
@click.option('--users', 'user_count', default=20, help='Users to create')
@click.option('--projects', 'project_count', default=10,
              help='Projects to create')
def seed_db(user_count: int, project_count: int) -> None:
    """Create demo users, logins, downloads and projects."""
    person = Person(Locale.EN)
    text = Text(Locale.EN)
    address = Address(Locale.EN)
    net = Internet()
    dev = Development()

    app = create_web_app()
    with app.app_context():
        datastore.create_all()
        users = []
        for i in range(user_count):
            username = f'{person.username()}{i}'
            password = person.password(length=12)
            user = datastore.create_user(
                domain.User(
                    username=username,
                    email=f'{username}@example.com',
                    name=person.full_name(),
                    role='admin' if i == 0 else 'user',
                    profile=domain.UserProfile(
                        bio=text.sentence(),
                        location=address.city(),
                        website=net.url()
                    )
                ),
                passwords.hash_password(password)
            )
            for _ in range(random.randint(1, 5)):
                datastore.record_login(str(user.user_id), net.ip_v4(),
                                       net.user_agent())
            users.append(user)
            click.echo('\t'.join([user.email, username, password]))

        if not users:
            return
        admin_id = str(users[0].user_id)
        for _ in range(project_count):
            content = text.text(quantity=5).encode('utf-8')
            form = MultiDict({
                'title': text.title(),
                'description': text.text(quantity=2),
                'category': random.choice(CATEGORIES),
                'tech_stack': ', '.join({dev.programming_language()
                                         for _ in range(3)}),
                'version': dev.version()
            })
            upload = FileStorage(io.BytesIO(content),
                                 filename=f'{form["title"][:20]}.txt')
            data, _, _ = projects.create_project(admin_id, form, upload)
            project_id = data['project']['id']
            for user in random.sample(users, k=min(3, len(users))):
                projects.download_project(project_id,
                                          user_id=str(user.user_id))
            click.echo(f'Created project {project_id}')


if __name__ == '__main__':
    seed_db()
