"""Concrete repository implementations using SQLModel."""

from .document import SQLModelDocumentRepository

__all__ = ["SQLModelDocumentRepository"]
