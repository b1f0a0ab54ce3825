# certvault/records.py
from __future__ import annotations

import base64
import binascii
import datetime as dt
import uuid
from enum import Enum
from typing import Any, Dict, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import from_epoch_ms, strip_data_uri, to_epoch_ms, today_utc, utc_now
from .formats.pkcs12 import is_well_formed

T = TypeVar("T")


class RecordType(str, Enum):
    PEM = "PEM"
    KEY = "KEY"
    PFX = "PFX"


def _new_id() -> str:
    return str(uuid.uuid4())


class ArchiveRecord(BaseModel):
    """One archived artifact. Frozen: records are only ever created or deleted."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    owner_id: str
    client_name: str
    domain: str
    expiration_date: dt.date
    type: RecordType
    file_name: str
    content: str = Field(..., repr=False)
    notes: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _pfx_content_is_pkcs12(self) -> "ArchiveRecord":
        if self.type is RecordType.PFX:
            try:
                der = base64.b64decode(self.content, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError("PFX content must be base64") from exc
            if not is_well_formed(der):
                raise ValueError("PFX content is not a PKCS#12 structure")
        return self

    def pfx_der(self) -> bytes:
        if self.type is not RecordType.PFX:
            raise ValueError(f"{self.type.value} record has no PKCS#12 payload")
        return base64.b64decode(self.content)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "client_name": self.client_name,
            "domain": self.domain,
            "expiration_date": self.expiration_date.isoformat(),
            "type": self.type.value,
            "file_name": self.file_name,
            "content": self.content,
            "notes": self.notes,
            "timestamp": to_epoch_ms(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ArchiveRecord":
        content = row["content"]
        if row["type"] == RecordType.PFX.value:
            content = strip_data_uri(content)
        return cls(
            id=str(row["id"]),
            owner_id=str(row.get("user_id") or ""),
            client_name=row["client_name"],
            domain=row["domain"],
            expiration_date=row["expiration_date"],
            type=row["type"],
            file_name=row["file_name"],
            content=content,
            notes=row.get("notes"),
            created_at=from_epoch_ms(row["timestamp"]),
        )


def is_expired(value: Union[ArchiveRecord, dt.date], today: Optional[dt.date] = None) -> bool:
    """Strictly before today; a record expiring today is still valid."""
    expiration = value.expiration_date if isinstance(value, ArchiveRecord) else value
    return expiration < (today or today_utc())


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_field(user_value: Optional[T], derived_value: Optional[T]) -> Optional[T]:
    """User input wins; the derived value only fills a blank field."""
    if not _blank(user_value):
        return user_value
    if not _blank(derived_value):
        return derived_value
    return None
