"""Batch optimization of external treatment plans."""

__version__ = "0.1.0"


def create_app():
    from .app import create_app as _create_app

    return _create_app()


__all__ = ["create_app", "__version__"]
