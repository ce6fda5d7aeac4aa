"""Repository protocol definitions for domain layer."""

from .document import DocumentStore

__all__ = ["DocumentStore"]
