"""
Script for registering an OAuth2 client. For dev/test purposes only.

.. warning: DO NOT USE THIS ON A PRODUCTION DATABASE.

"""

import click

from equators import domain
from equators.auth import scopes
from equators.controllers.apps import generate_secret, GRANT_TYPES
from equators.factory import create_web_app
from equators.services import datastore

DEFAULT_SCOPES = " ".join(str(scope) for scope in scopes.OAUTH_SCOPES)


@click.command()
@click.option('--owner_id', prompt='ID of the user who owns the client')
@click.option('--name', prompt='Brief client name')
@click.option('--url', prompt='Info URL for the client')
@click.option('--description', prompt='What is it')
@click.option('--scopes', 'client_scopes',
              prompt='Space-delimited authorized scopes',
              default=DEFAULT_SCOPES)
@click.option('--redirect_uri', prompt='Redirect URI')
@click.option('--auto_approve', is_flag=True, default=False)
@click.option('--require_pkce', is_flag=True, default=False)
def create_client(owner_id: str, name: str, url: str, description: str,
                  client_scopes: str, redirect_uri: str,
                  auto_approve: bool = False,
                  require_pkce: bool = False) -> None:
    """Create a new client. For dev/test purposes only."""
    app = create_web_app()
    with app.app_context():
        datastore.create_all()
        now = domain.utcnow()
        secret = generate_secret()
        client_id = datastore.save_client(
            domain.Client(owner_id=owner_id, name=name, url=url,
                          description=description,
                          redirect_uris=[redirect_uri],
                          auto_approve=auto_approve,
                          require_pkce=require_pkce),
            cred=domain.ClientCredential(client_secret=secret['hashed']),
            auths=[domain.ClientAuthorization(scope=scope, requested=now,
                                              authorized=now)
                   for scope in client_scopes.split()],
            grant_types=[domain.ClientGrantType(grant_type=grant_type,
                                                requested=now,
                                                authorized=now)
                         for grant_type in GRANT_TYPES]
        )
        click.echo(f'Created client {name} with ID {client_id}'
                   f' and secret {secret["secret"]}')


if __name__ == '__main__':
    create_client()
