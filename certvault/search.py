from typing import Iterable, List

from .records import ArchiveRecord


def _haystack(record: ArchiveRecord) -> List[str]:
    fields = [record.client_name, record.domain]
    if record.notes:
        fields.append(record.notes)
    return fields


def filter_records(records: Iterable[ArchiveRecord], term: str) -> List[ArchiveRecord]:
    """Case-insensitive substring search over client name, domain and notes."""
    needle = (term or "").lower()
    if not needle:
        return list(records)
    return [r for r in records if any(needle in f.lower() for f in _haystack(r))]
