"""WSGI entry point for the pet-care task service."""

import os

from petcare_app import create_app

app = create_app(os.getenv("FLASK_ENV", "production"))
