"""
Helper script for generating an auth JWT.

Be sure that you are using the same secret when running this script as when you
run the app. Set ``JWT_SECRET=somesecret`` in your environment to ensure that
the same secret is always used.


.. code-block:: bash

   $ JWT_SECRET=foosecret python generate_token.py
   User ID: 4f2a...
   Email address: joe@bloggs.com
   Username: jbloggs
   Full name [Jane Doe]: Joe Bloggs
   Role [user]:

   eyJ0eXAiOiJKV1QiLCJhbGciOiJIUzI1NiJ9...


Start the dev server with:

.. code-block:: bash

   $ JWT_SECRET=foosecret FLASK_APP=app.py FLASK_DEBUG=1 flask run


Use the token in your requests to the ``/api`` endpoints. Set the header
``Authorization: [token]``.
"""

import os

import click

from equators.auth import helpers


@click.command()
@click.option('--user_id', prompt='User ID')
@click.option('--email', prompt='Email address')
@click.option('--username', prompt='Username')
@click.option('--name', prompt='Full name', default='Jane Doe')
@click.option('--role', prompt='Role', default='user',
              type=click.Choice(['user', 'admin']))
@click.option('--expires', default=36000, help='Lifetime in seconds')
def generate_token(user_id: str, email: str, username: str,
                   name: str = 'Jane Doe', role: str = 'user',
                   expires: int = 36000) -> None:
    """Generate an auth token for dev/testing purposes."""
    token = helpers.generate_token(user_id, email, username, name=name,
                                   role=role, expires=expires,
                                   secret=os.environ['JWT_SECRET'])
    click.echo(token)


if __name__ == '__main__':
    generate_token()
