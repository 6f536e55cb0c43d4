"""Metadata Store: photo rows, tags and their links."""

from .schema import (
    Base,
    PhotoRow,
    TagRow,
    create_engine_from_url,
    init_db,
    photo_tags,
    session_factory,
)
from .store import MetadataStore, PhotoStore, get_or_create_tag, link_tag

__all__ = [
    "Base",
    "MetadataStore",
    "PhotoRow",
    "PhotoStore",
    "TagRow",
    "create_engine_from_url",
    "get_or_create_tag",
    "init_db",
    "link_tag",
    "photo_tags",
    "session_factory",
]
