# certvault/submission.py
from __future__ import annotations

import base64
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Type, TypeVar

from .common import as_utc, pkcs12_data_uri, utc_now
from .entities import ChainBundle
from .errors import CertVaultError, MissingRequiredInputError, ParseError, PersistenceError, SynthesisError
from .formats import pkcs12
from .formats.chain import assemble_chain
from .formats.pem import parse_certificate, parse_private_key
from .records import ArchiveRecord, RecordType, resolve_field
from .settings import Settings
from .store import ArchiveStore
from .x509meta import extract

log = logging.getLogger(__name__)

E = TypeVar("E", bound=CertVaultError)
R = TypeVar("R")


@dataclass(frozen=True)
class Upload:
    file_name: str
    content: str = field(repr=False)


@dataclass(frozen=True)
class SubmissionForm:
    client_name: str
    domain: str = ""
    expiration_date: Optional[dt.date] = None
    notes: Optional[str] = None
    pfx_password: str = field(default="", repr=False)
    cert: Optional[Upload] = None
    key: Optional[Upload] = None
    bundle: Optional[Upload] = None
    key_password: Optional[str] = field(default=None, repr=False)


@dataclass
class SubmissionResult:
    records: List[ArchiveRecord] = field(default_factory=list)
    errors: List[CertVaultError] = field(default_factory=list)

    def first(self, kind: Type[E]) -> Optional[E]:
        return next((e for e in self.errors if isinstance(e, kind)), None)

    @property
    def pfx_error(self) -> Optional[SynthesisError]:
        return self.first(SynthesisError)

    @property
    def persistence_error(self) -> Optional[PersistenceError]:
        return self.first(PersistenceError)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class PfxBundle:
    der: bytes = field(repr=False)
    file_name: str = "bundle.pfx"
    password_strength: int = 0

    @property
    def b64(self) -> str:
        return base64.b64encode(self.der).decode("ascii")

    @property
    def data_uri(self) -> str:
        return pkcs12_data_uri(self.der)


def _present(upload: Optional[Upload]) -> bool:
    return upload is not None and bool(upload.content.strip())


def _parse_slot(errors: List[CertVaultError], slot: str, fn: Callable[..., R], *args) -> Optional[R]:
    try:
        return fn(*args)
    except ParseError as exc:
        exc.slot = slot
        log.warning("%s upload rejected: %s", slot, exc.reason)
        errors.append(exc)
        return None


async def submit(
    store: ArchiveStore,
    owner_id: str,
    form: SubmissionForm,
    *,
    allow_expired: bool = False,
    settings: Optional[Settings] = None,
    now: Optional[dt.datetime] = None,
) -> SubmissionResult:
    """Archive one set of uploads: certificate, key, chain bundle and a derived PFX.

    Each upload stands alone: a malformed one is reported in `errors` and only
    its own record is skipped. Domain and expiration fall back to the
    certificate's CN and validity end when the form leaves them blank. The PFX
    is built only when both certificate and key parsed; a synthesis failure
    never blocks the other records. Records are inserted one after another and
    the first PersistenceError stops the sequence without undoing earlier
    inserts. If domain or expiration stays blank the submission is refused;
    the raised MissingRequiredInputError carries the upload errors behind it.
    """
    settings = settings or Settings()
    now = as_utc(now) if now else utc_now()

    if not form.client_name or not form.client_name.strip():
        raise MissingRequiredInputError("client_name")
    if not any(_present(u) for u in (form.cert, form.key, form.bundle)):
        raise MissingRequiredInputError("files")

    result = SubmissionResult()
    cert = key = None
    chain: ChainBundle = ()
    if _present(form.cert):
        cert = _parse_slot(result.errors, "cert", parse_certificate, form.cert.content)
    if _present(form.key):
        key = _parse_slot(result.errors, "key", parse_private_key, form.key.content, form.key_password)
    if _present(form.bundle):
        chain = assemble_chain(form.bundle.content)
        if not chain:
            result.errors.append(ParseError("bundle holds no parseable certificate", slot="bundle"))

    derived = extract(cert) if cert is not None else None
    domain = resolve_field(form.domain, derived.common_name if derived else None)
    expiration = resolve_field(form.expiration_date, derived.not_after if derived else None)
    if domain is None or expiration is None:
        missing = MissingRequiredInputError("domain" if domain is None else "expiration_date", result.errors)
        if result.errors:
            raise missing from result.errors[0]
        raise missing

    def record(kind: RecordType, file_name: str, content: str) -> ArchiveRecord:
        return ArchiveRecord(
            owner_id=owner_id,
            client_name=form.client_name,
            domain=domain,
            expiration_date=expiration,
            type=kind,
            file_name=file_name,
            content=content,
            notes=form.notes or None,
            created_at=now,
        )

    pending: List[ArchiveRecord] = []
    if cert is not None:
        pending.append(record(RecordType.PEM, form.cert.file_name, form.cert.content))
    if key is not None:
        pending.append(record(RecordType.KEY, form.key.file_name, form.key.content))
    if chain:
        pending.append(record(RecordType.PEM, form.bundle.file_name, form.bundle.content))

    if cert is not None and key is not None:
        try:
            der = pkcs12.synthesize(
                cert,
                key,
                chain,
                form.pfx_password,
                form.client_name,
                allow_expired=allow_expired,
                now=now,
                scheme=settings.PFX_ENCRYPTION,
            )
        except SynthesisError as exc:
            log.warning("PFX not generated for client '%s': %s", form.client_name, exc.code)
            result.errors.append(exc)
        else:
            pending.append(record(RecordType.PFX, f"{domain}.pfx", base64.b64encode(der).decode("ascii")))

    for rec in pending:
        try:
            await store.insert(rec)
        except PersistenceError as exc:
            log.error("archive insert failed after %d of %d record(s): %s", len(result.records), len(pending), exc)
            result.errors.append(exc)
            break
        result.records.append(rec)

    log.info(
        "archived %d record(s) for client '%s' (%s)",
        len(result.records),
        form.client_name,
        ", ".join(r.type.value for r in result.records) or "none",
    )
    return result


def build_pfx(
    cert_text: str,
    key_text: str,
    password: str = "",
    *,
    bundle_text: Optional[str] = None,
    key_password: Optional[str] = None,
    friendly_name: Optional[str] = None,
    allow_expired: bool = False,
    settings: Optional[Settings] = None,
) -> PfxBundle:
    settings = settings or Settings()
    if not cert_text or not cert_text.strip():
        raise MissingRequiredInputError("cert")
    if not key_text or not key_text.strip():
        raise MissingRequiredInputError("key")

    errors: List[CertVaultError] = []
    cert = _parse_slot(errors, "cert", parse_certificate, cert_text)
    key = _parse_slot(errors, "key", parse_private_key, key_text, key_password)
    if errors:
        raise errors[0]

    chain = assemble_chain(bundle_text) if bundle_text else ()
    der = pkcs12.synthesize(
        cert,
        key,
        chain,
        password,
        friendly_name or settings.PFX_FRIENDLY_NAME,
        allow_expired=allow_expired,
        scheme=settings.PFX_ENCRYPTION,
    )
    log.info("built PKCS#12 bundle for '%s' with %d chain cert(s)", cert.subject, len(chain))
    return PfxBundle(der=der, password_strength=pkcs12.password_strength(password))
