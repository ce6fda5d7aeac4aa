"""SQLModel table exports."""

from .document import MirrorDocument

__all__ = ["MirrorDocument"]
