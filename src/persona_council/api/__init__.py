"""HTTP gateway over the persona tools."""

from .gateway import create_app

__all__ = ["create_app"]
