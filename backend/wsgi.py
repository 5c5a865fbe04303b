# Overview: WSGI entrypoint used by FLASK_APP and production servers.

from repairpos import create_app

app = create_app()
