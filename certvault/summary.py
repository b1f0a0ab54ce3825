from typing import Dict, Any, Optional, Callable

from .errors import PASSWORD_REQUIRED, ParseError
from .formats import pkcs8
from .formats import pkcs12 as fmt_pkcs12
from .formats.chain import assemble_chain
from .formats.pem import parse_private_key
from .records import ArchiveRecord, RecordType, is_expired
from .x509meta import cert_to_meta, cert_warnings


_LEGACY_ENCRYPTED = "Proc-Type: 4,ENCRYPTED"

Handler = Callable[[ArchiveRecord, Optional[str]], Dict[str, Any]]


def _handle_pem(record: ArchiveRecord, _password: Optional[str]) -> Dict[str, Any]:
    metas = [cert_to_meta(c) for c in assemble_chain(record.content)]
    if not metas:
        return {"format": "PEM", "error": "InvalidFormat"}
    out: Dict[str, Any] = {"format": "PEM"}
    if len(metas) == 1:
        out["x509"] = metas[0]
    else:
        out["x509_chain"] = metas
    warns = [w for m in metas for w in cert_warnings(m)]
    if warns:
        out["warnings"] = warns
    return out


def _handle_key(record: ArchiveRecord, password: Optional[str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {"format": "PKCS8"}
    try:
        key = parse_private_key(record.content, password)
    except ParseError as exc:
        info = pkcs8.encryption_info(record.content)
        if info is not None:
            return {**out, "encrypted": True, "encryption": info}
        if exc.reason == PASSWORD_REQUIRED or _LEGACY_ENCRYPTED in record.content:
            # legacy Proc-Type header: no PBES parameters to report
            return {**out, "encrypted": True, "error": exc.reason}
        return {**out, "error": exc.reason}
    meta = pkcs8.key_meta(key.handle)
    out.update({"encrypted": False, "key": {**meta, "algorithm_oid": key.algorithm_oid}})
    warns = pkcs8.key_warnings(meta)
    if warns:
        out["warnings"] = warns
    return out


def _handle_pfx(record: ArchiveRecord, password: Optional[str]) -> Dict[str, Any]:
    return fmt_pkcs12.summarize(record.pfx_der(), password)


_HANDLERS: Dict[RecordType, Handler] = {
    RecordType.PEM: _handle_pem,
    RecordType.KEY: _handle_key,
    RecordType.PFX: _handle_pfx,
}


def describe_record(record: ArchiveRecord, password: Optional[str] = None) -> Dict[str, Any]:
    base: Dict[str, Any] = {
        "id": record.id,
        "type": record.type.value,
        "file_name": record.file_name,
        "client_name": record.client_name,
        "domain": record.domain,
        "expiration_date": record.expiration_date.isoformat(),
        "expired": is_expired(record),
    }
    base.update(_HANDLERS[record.type](record, password))
    return base
