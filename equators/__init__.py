"""
Equators site service.

The site service is a Flask application that backs the Equators website. It
handles local accounts (registration, login, logout), profile and settings
management, download tracking for the projects and products offered on the
site, and an OAuth2 authorization server for third-party applications that
want to act on behalf of Equators users.

Third-party applications are registered by site users. A registered app may
send users through the authorization-code workflow (optionally with PKCE) to
obtain an access/refresh token pair. The access token is exchanged at the
``userinfo`` endpoint for profile data, filtered by the scopes that the user
granted.

Login sessions live in a key-value store (Redis) with a TTL. Everything else
(users, apps, authorization codes, tokens, download logs, projects) lives in a
relational data store accessed through SQLAlchemy.
"""
