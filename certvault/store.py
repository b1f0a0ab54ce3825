from typing import Dict, List, Protocol

from .errors import PersistenceError
from .records import ArchiveRecord


class ArchiveStore(Protocol):
    """Persistence capability the engine is handed; it never opens connections itself."""

    async def list(self) -> List[ArchiveRecord]: ...

    async def insert(self, record: ArchiveRecord) -> None: ...

    async def delete(self, record_id: str) -> None: ...


class InMemoryArchiveStore:
    def __init__(self) -> None:
        self._by_id: Dict[str, ArchiveRecord] = {}

    async def list(self) -> List[ArchiveRecord]:
        # newest first; sorted() is stable so one submission keeps its insert order
        return sorted(self._by_id.values(), key=lambda r: r.created_at, reverse=True)

    async def insert(self, record: ArchiveRecord) -> None:
        if record.id in self._by_id:
            raise PersistenceError(f"duplicate record id: {record.id}")
        self._by_id[record.id] = record

    async def delete(self, record_id: str) -> None:
        self._by_id.pop(record_id, None)

    def count(self) -> int:
        return len(self._by_id)

    def clear(self) -> None:
        self._by_id.clear()
