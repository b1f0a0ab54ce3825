from dataclasses import dataclass, field

from .common import PKCS12_MEDIA_TYPE, pkcs12_data_uri
from .records import ArchiveRecord, RecordType

PEM_MEDIA_TYPE = "application/x-pem-file"


@dataclass(frozen=True)
class Download:
    file_name: str
    media_type: str
    payload: bytes = field(repr=False)


def export_record(record: ArchiveRecord) -> Download:
    """Downloadable form of a record: raw DER for PFX, UTF-8 text otherwise."""
    if record.type is RecordType.PFX:
        return Download(record.file_name, PKCS12_MEDIA_TYPE, record.pfx_der())
    return Download(record.file_name, PEM_MEDIA_TYPE, record.content.encode("utf-8"))


def data_uri(record: ArchiveRecord) -> str:
    return pkcs12_data_uri(record.pfx_der())
