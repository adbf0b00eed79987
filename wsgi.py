"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi init-store
    flask --app wsgi db upgrade
"""

from orgplan import create_app

app = create_app()
