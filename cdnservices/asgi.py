"""ASGI entry point: ``hypercorn cdnservices.asgi:app``."""

from cdnservices.app_factory import create_asgi_app

app = create_asgi_app()
