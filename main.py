"""WSGI entrypoint for the recipeshare application.

The Flask development server is intentionally not started from this module so
that deployments rely on a WSGI server such as Gunicorn. Local development can
still use ``flask --app main run`` which imports the ``app`` object defined
below.
"""

import logging

from recipeshare import create_app

logging.basicConfig(level=logging.INFO)

app = create_app()


__all__ = ["app"]
