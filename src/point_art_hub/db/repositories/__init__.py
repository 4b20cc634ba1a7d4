"""Database repositories."""

from point_art_hub.db.repositories.collection_repository import CollectionRepository
from point_art_hub.db.repositories.kv_repository import KeyValueRepository

__all__ = ["CollectionRepository", "KeyValueRepository"]
