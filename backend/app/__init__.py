"""Worker productivity backend.

The FastAPI application is resolved lazily so that Alembic and the CLI
scripts can import models and services without building the web app.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi import FastAPI


def get_app() -> "FastAPI":
    from .main import app as fastapi_app

    return fastapi_app


def __getattr__(name: str) -> Any:
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["app", "get_app"]
