import base64
import binascii
import datetime as dt
from typing import Annotated, Any, Dict, Optional

from fastmcp import FastMCP
from pydantic import Field

from .common import strip_data_uri
from .errors import CertVaultError
from .export import export_record
from .formats import pkcs12 as fmt_pkcs12
from .logging_conf import setup_logging
from .records import ArchiveRecord, is_expired
from .search import filter_records
from .settings import Settings
from .store import ArchiveStore, InMemoryArchiveStore
from .submission import SubmissionForm, Upload, build_pfx, submit
from .summary import describe_record

mcp = FastMCP(
    name="CertVault",
    instructions=(
        "Purpose: archive TLS certificates, private keys and chain bundles submitted as PEM text, "
        "and build password-protected PKCS#12 (PFX) containers from them.\n\n"
        "Use me when: you need to store a certificate set for a client, search the archive, "
        "download an archived artifact, or bundle a certificate and its key into a .pfx file.\n"
        "Do NOT use me for: chain/revocation validation or key generation.\n\n"
        "How to call:\n"
        "- Archive a set → `archive_submit(owner_id=..., client_name=..., cert_pem=?, key_pem=?, bundle_pem=?, pfx_password=?)`.\n"
        "  Domain and expiration default to the certificate's CN and validity end.\n"
        "- Browse → `archive_list()` / `archive_search(term=...)`; details → `archive_describe(record_id=...)`.\n"
        "- Build a PFX without archiving → `pfx_build(cert_pem=..., key_pem=..., password=?)`.\n\n"
        "Outputs: JSON objects. Failures come back as entries whose `error` field names the failure, such as "
        "ParseError, MismatchError, ExpiredCertificateError, MissingRequiredInputError or PersistenceError.\n\n"
        "Safety: passwords are never logged or persisted; record listings never include file contents."
    ),
)

_settings = Settings.from_env()
_store: ArchiveStore = InMemoryArchiveStore()


def use_store(store: ArchiveStore) -> None:
    global _store
    _store = store


def _row_summary(record: ArchiveRecord) -> Dict[str, Any]:
    row = record.to_row()
    row.pop("content")
    row["expired"] = is_expired(record)
    return row


async def _find(record_id: str) -> Optional[ArchiveRecord]:
    return next((r for r in await _store.list() if r.id == record_id), None)


def _upload(name: Optional[str], default_name: str, content: Optional[str]) -> Optional[Upload]:
    if not content:
        return None
    return Upload(file_name=name or default_name, content=content)


@mcp.tool(description="Health check; answers 'pong'.")
def ping() -> str:
    return "pong"


@mcp.tool(
    description="List archived records, newest first. Contents are omitted.",
    tags={"certvault", "archive"},
    annotations={"title": "List archive", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": False},
)
async def archive_list() -> dict:
    return {"records": [_row_summary(r) for r in await _store.list()]}


@mcp.tool(
    description="Case-insensitive search over client name, domain and notes. An empty term lists everything.",
    tags={"certvault", "archive"},
    annotations={"title": "Search archive", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": False},
)
async def archive_search(
    term: Annotated[str, Field(description="Substring to look for; matching ignores case.")] = "",
) -> dict:
    return {"records": [_row_summary(r) for r in filter_records(await _store.list(), term)]}


@mcp.tool(
    description=(
        "Archive a certificate set. Each provided PEM becomes its own record; when both a certificate "
        "and its matching key are given a PFX record is added. A bad upload only drops its own record."
    ),
    tags={"certvault", "archive", "pkcs12"},
    annotations={"title": "Archive certificate set", "readOnlyHint": False, "idempotentHint": False, "openWorldHint": False},
)
async def archive_submit(
    owner_id: Annotated[str, Field(description="Id of the acting user; stored on every record.")],
    client_name: Annotated[str, Field(description="Client the certificate set belongs to.")],
    domain: Annotated[str, Field(description="Domain; leave empty to use the certificate CN.")] = "",
    expiration_date: Annotated[str, Field(description="YYYY-MM-DD; leave empty to use the certificate validity end.")] = "",
    notes: Annotated[Optional[str], Field(description="Free-form notes.")] = None,
    cert_pem: Annotated[Optional[str], Field(description="Certificate PEM text.")] = None,
    cert_file_name: Annotated[Optional[str], Field(description="Original certificate file name.")] = None,
    key_pem: Annotated[Optional[str], Field(description="Private key PEM text.")] = None,
    key_file_name: Annotated[Optional[str], Field(description="Original key file name.")] = None,
    key_password: Annotated[Optional[str], Field(description="Passphrase of an encrypted private key.")] = None,
    bundle_pem: Annotated[Optional[str], Field(description="Concatenated chain certificates (PEM).")] = None,
    bundle_file_name: Annotated[Optional[str], Field(description="Original bundle file name.")] = None,
    pfx_password: Annotated[str, Field(description="Password protecting the generated PFX; may be empty.")] = "",
    allow_expired: Annotated[bool, Field(description="Build the PFX even if the certificate has expired.")] = False,
) -> dict:
    expiry: Optional[dt.date] = None
    if expiration_date.strip():
        try:
            expiry = dt.date.fromisoformat(expiration_date.strip())
        except ValueError:
            return {"records": [], "errors": [{"error": "InvalidDate", "message": f"not a YYYY-MM-DD date: {expiration_date}"}]}

    form = SubmissionForm(
        client_name=client_name,
        domain=domain,
        expiration_date=expiry,
        notes=notes,
        pfx_password=pfx_password,
        cert=_upload(cert_file_name, "certificate.pem", cert_pem),
        key=_upload(key_file_name, "private.key", key_pem),
        bundle=_upload(bundle_file_name, "bundle.pem", bundle_pem),
        key_password=key_password,
    )
    try:
        result = await submit(_store, owner_id, form, allow_expired=allow_expired, settings=_settings)
    except CertVaultError as exc:
        return {"records": [], "errors": [exc.as_dict()]}
    return {
        "records": [_row_summary(r) for r in result.records],
        "errors": [e.as_dict() for e in result.errors],
    }


@mcp.tool(
    description="Delete a record by id. Unknown ids are ignored.",
    tags={"certvault", "archive"},
    annotations={"title": "Delete record", "readOnlyHint": False, "idempotentHint": True, "openWorldHint": False},
)
async def archive_delete(
    record_id: Annotated[str, Field(description="Record id as returned by archive_list.")],
) -> dict:
    await _store.delete(record_id)
    return {"deleted": record_id}


@mcp.tool(
    description="Return a record's file for download, base64-encoded (raw DER for PFX, PEM text otherwise).",
    tags={"certvault", "archive", "export"},
    annotations={"title": "Export record", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": False},
)
async def archive_export(
    record_id: Annotated[str, Field(description="Record id as returned by archive_list.")],
) -> dict:
    record = await _find(record_id)
    if record is None:
        return {"error": "NotFound", "message": f"no record {record_id}"}
    dl = export_record(record)
    return {
        "file_name": dl.file_name,
        "media_type": dl.media_type,
        "content_b64": base64.b64encode(dl.payload).decode("ascii"),
    }


@mcp.tool(
    description="Describe an archived record: certificate metadata, key type or PFX contents.",
    tags={"certvault", "archive", "x509"},
    annotations={"title": "Describe record", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": False},
)
async def archive_describe(
    record_id: Annotated[str, Field(description="Record id as returned by archive_list.")],
    password: Annotated[Optional[str], Field(description="PFX password or key passphrase, if any.")] = None,
) -> dict:
    record = await _find(record_id)
    if record is None:
        return {"error": "NotFound", "message": f"no record {record_id}"}
    return describe_record(record, password)


@mcp.tool(
    description="Bundle a certificate, its private key and an optional chain into a PKCS#12 file. Nothing is archived.",
    tags={"certvault", "pkcs12"},
    annotations={"title": "Build PFX", "readOnlyHint": True, "idempotentHint": False, "openWorldHint": False},
)
def pfx_build(
    cert_pem: Annotated[str, Field(description="Certificate PEM text.")],
    key_pem: Annotated[str, Field(description="Private key PEM text.")],
    password: Annotated[str, Field(description="PFX password; empty produces a passphrase-less container.")] = "",
    bundle_pem: Annotated[Optional[str], Field(description="Chain certificates (PEM).")] = None,
    key_password: Annotated[Optional[str], Field(description="Passphrase of an encrypted private key.")] = None,
    friendly_name: Annotated[Optional[str], Field(description="Display label stored in the container.")] = None,
    allow_expired: Annotated[bool, Field(description="Build even if the certificate has expired.")] = False,
) -> dict:
    try:
        bundle = build_pfx(
            cert_pem,
            key_pem,
            password,
            bundle_text=bundle_pem,
            key_password=key_password,
            friendly_name=friendly_name,
            allow_expired=allow_expired,
            settings=_settings,
        )
    except CertVaultError as exc:
        return exc.as_dict()
    return {
        "file_name": bundle.file_name,
        "content_b64": bundle.b64,
        "password_strength": bundle.password_strength,
        "password_label": fmt_pkcs12.strength_label(password),
    }


@mcp.tool(
    description="Inspect a base64-encoded PKCS#12 file: certificates, key presence, friendly name and MAC.",
    tags={"certvault", "pkcs12", "analysis"},
    annotations={"title": "Inspect PFX", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": False},
)
def pfx_inspect(
    content_b64: Annotated[str, Field(description="RFC 4648 base64 of the .pfx/.p12 bytes, or a data: URI.")],
    password: Annotated[Optional[str], Field(description="Container password; leave null if none.")] = None,
) -> dict:
    payload = strip_data_uri(content_b64.strip())
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return {"error": "InvalidFormat", "message": "content_b64 is not base64"}
    return fmt_pkcs12.summarize(data, password)


def main() -> None:
    setup_logging(_settings)
    mcp.run()


if __name__ == "__main__":
    main()
