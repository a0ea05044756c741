#!/usr/bin/env python3
"""WSGI entry point for production deployment.

- Gunicorn: gunicorn --chdir backend wsgi:application
"""

from app import create_app

# Standard WSGI application variable name
application = create_app()

if __name__ == "__main__":
    # For development only
    application.run(port=5000)
