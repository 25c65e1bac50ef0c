"""Batch repositories package."""

from modules.batching.repositories.django_repository import BatchDjangoRepository
from modules.batching.repositories.interfaces import IBatchRepository

__all__ = ["BatchDjangoRepository", "IBatchRepository"]
