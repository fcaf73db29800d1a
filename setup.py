"""Install the Equators site service."""

from setuptools import setup, find_packages

setup(
    name='equators-site',
    version='0.1.0',
    packages=find_packages(include=['equators', 'equators.*'],
                           exclude=['*test*']),
    package_data={'equators': ['templates/equators/*.html']},
    include_package_data=True,
    install_requires=[
        "flask",
        "werkzeug",
        "markupsafe",
        "authlib>=1.5",
        "sqlalchemy",
        "flask-sqlalchemy",
        "python-dateutil",
        "pytz",
        "pyjwt",
        "redis",
        "fakeredis",
        "retry",
        "wtforms",
        "email-validator",
        "click",
        "python-json-logger",
        "mimesis",
    ],
    extras_require={
        'test': [
            "pytest",
        ]
    },
    zip_safe=False
)
