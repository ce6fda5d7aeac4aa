"""Document store protocol."""

from __future__ import annotations

from typing import Any, Iterable, Protocol


class DocumentStore(Protocol):
    """Per-user collections of JSON documents keyed by record id."""

    def mirror(self, user_id: str, collection: str, records: Iterable[dict[str, Any]]) -> None:
        """Upsert the given payloads; each payload must carry an ``id``."""
        ...

    def delete(self, user_id: str, collection: str, record_ids: Iterable[str]) -> None:
        """Remove documents by id."""
        ...

    def load(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        """Return every live payload in a collection."""
        ...
