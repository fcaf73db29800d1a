"""Web Server Gateway Interface entry-point."""

import os

from equators.factory import create_web_app

__flask_app__ = create_web_app()


def application(environ, start_response):    # type: ignore
    """WSGI application."""
    for key, value in environ.items():
        # uWSGI may pass configuration in the request environ. Only known
        # config keys are picked up; ``SERVER_NAME`` stays as configured.
        if key == 'SERVER_NAME' or key not in __flask_app__.config:
            continue
        os.environ[key] = str(value)
        __flask_app__.config[key] = str(value)
    return __flask_app__(environ, start_response)
