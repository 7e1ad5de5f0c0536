from .server import create_app, build_server

__all__ = ["create_app", "build_server"]
