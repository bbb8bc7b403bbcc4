"""HTTP API for event threads."""

from .server import create_api_app, run_api_server

__all__ = ["create_api_app", "run_api_server"]
