"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
    flask --app wsgi seed-workflow
"""

from alms import create_app

app = create_app()
