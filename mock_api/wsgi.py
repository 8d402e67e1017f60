"""WSGI entry point for the stand-in Crocodiles API."""

import os

from mock_api import create_app

app = create_app(os.getenv("FLASK_ENV", "production"))
