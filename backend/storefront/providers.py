# Overview: Per-request construction of the slip repository and file storage.

from __future__ import annotations

from urllib.parse import urljoin

from flask import current_app, request

from .extensions import db
from .repositories import SqlAlchemySlipRepository
from .services.storage_service import LocalSlipStorage


def slip_repository() -> SqlAlchemySlipRepository:
    """Repository around the Flask-SQLAlchemy scoped session (removed at app-context teardown)."""
    return SqlAlchemySlipRepository(db.session)


def slip_storage() -> LocalSlipStorage:
    config = current_app.config
    return LocalSlipStorage(
        root_dir=config["SLIP_UPLOAD_DIR"],
        url_prefix=config.get("SLIP_URL_PREFIX", "/uploads/slips"),
        max_bytes=config.get("SLIP_MAX_BYTES", 10 * 1024 * 1024),
    )


def public_url(path: str) -> str:
    """Absolute URL for a stored slip reference; absolute URLs pass through."""
    if not path or "://" in path:
        return path
    return urljoin(request.host_url, path.lstrip("/"))
