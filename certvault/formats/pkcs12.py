import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from pyasn1.codec.ber import decoder as ber_decoder
from pyasn1.error import PyAsn1Error
from pyasn1_modules import rfc7292

from ..common import as_utc, sha256_hex, utc_now
from ..correlate import ensure_matches
from ..entities import Certificate, ChainBundle, PrivateKey
from ..errors import ExpiredCertificateError, SynthesisError
from ..x509meta import cert_to_meta, cert_warnings
from .pem import certificate_from_x509, private_key_from_handle

log = logging.getLogger(__name__)

_MAC_DIGESTS = {
    "1.3.14.3.2.26": "sha1",
    "2.16.840.1.101.3.4.2.1": "sha256",
    "2.16.840.1.101.3.4.2.2": "sha384",
    "2.16.840.1.101.3.4.2.3": "sha512",
}


@dataclass(frozen=True)
class Pkcs12Contents:
    certificate: Optional[Certificate]
    key: Optional[PrivateKey]
    chain: ChainBundle = ()
    friendly_name: Optional[str] = None
    chain_friendly_names: List[Optional[str]] = field(default_factory=list)


def _encryption(password: str, scheme: str):
    if not password:
        # passphrase-less container: bags stay unencrypted and no password is needed on import
        return serialization.NoEncryption()
    pwd = password.encode("utf-8")
    if scheme == "legacy":
        return (
            serialization.PrivateFormat.PKCS12.encryption_builder()
            .kdf_rounds(2048)
            .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
            .hmac_hash(hashes.SHA1())
            .build(pwd)
        )
    return serialization.BestAvailableEncryption(pwd)


def synthesize(
    cert: Certificate,
    key: PrivateKey,
    chain: Sequence[Certificate] = (),
    password: str = "",
    friendly_name: str = "",
    *,
    allow_expired: bool = False,
    now: Optional[dt.datetime] = None,
    scheme: str = "aes256",
) -> bytes:
    """Build a DER PKCS#12 container holding `cert`, its `key` and the `chain`.

    The key is checked against the certificate before anything is encoded,
    then the certificate's validity end is checked against `now` unless
    `allow_expired` is set. Chain certificates are written as additional
    certificate bags in the order given. The library derives the localKeyId
    binding the key bag to the certificate bag.
    """
    ensure_matches(cert, key)
    now = as_utc(now) if now else utc_now()
    if cert.not_after < now and not allow_expired:
        raise ExpiredCertificateError(cert.not_after)

    try:
        der = pkcs12.serialize_key_and_certificates(
            name=friendly_name.encode("utf-8") if friendly_name else None,
            key=key.handle,
            cert=cert.handle,
            cas=[c.handle for c in chain] or None,
            encryption_algorithm=_encryption(password, scheme),
        )
    except (TypeError, ValueError) as exc:
        raise SynthesisError(f"PKCS#12 encoding failed: {exc}") from exc

    log.debug("synthesized PKCS#12 for '%s' with %d chain cert(s), scheme=%s", cert.subject, len(chain), scheme)
    return der


def _load(data: bytes, password: Optional[str]):
    pwd = password.encode("utf-8") if password else None
    return pkcs12.load_pkcs12(data, pwd)


def _friendly(pc) -> Optional[str]:
    name = getattr(pc, "friendly_name", None)
    return name.decode("utf-8", "replace") if name else None


def open_pfx(data: bytes, password: Optional[str] = None) -> Pkcs12Contents:
    """Reopen a container; raises ValueError on a wrong password or corrupt data."""
    loaded = _load(data, password)
    cert = loaded.cert
    extra = list(loaded.additional_certs)
    return Pkcs12Contents(
        certificate=certificate_from_x509(cert.certificate) if cert is not None else None,
        key=private_key_from_handle(loaded.key) if loaded.key is not None else None,
        chain=tuple(certificate_from_x509(c.certificate) for c in extra),
        friendly_name=_friendly(cert) if cert is not None else None,
        chain_friendly_names=[_friendly(c) for c in extra],
    )


def _decode_pfx(data: bytes):
    pfx, rest = ber_decoder.decode(data, asn1Spec=rfc7292.PFX())
    if rest:
        raise PyAsn1Error("trailing bytes after PFX structure")
    return pfx


def is_well_formed(data: bytes) -> bool:
    """Structural check: a single PFX v3 SEQUENCE, nothing decrypted."""
    if not data:
        return False
    try:
        pfx = _decode_pfx(data)
    except PyAsn1Error:
        return False
    return int(pfx["version"]) == 3


def _mac_info(data: bytes) -> Dict[str, Any]:
    try:
        pfx = _decode_pfx(data)
    except PyAsn1Error:
        return {}
    mac = pfx["macData"]
    if not mac.isValue:
        return {"mac": None}
    try:
        oid = ".".join(str(x) for x in mac["mac"]["digestAlgorithm"]["algorithm"].asTuple())
        return {"mac": {"digest": _MAC_DIGESTS.get(oid, oid), "iterations": int(mac["iterations"])}}
    except (PyAsn1Error, KeyError):
        return {}


def _summarize_loaded(base: Dict[str, Any], contents: Pkcs12Contents) -> Dict[str, Any]:
    out: Dict[str, Any] = {**base, "encrypted": False, "has_key": contents.key is not None}
    if contents.friendly_name:
        out["friendly_name"] = contents.friendly_name
    certs = ([contents.certificate] if contents.certificate else []) + list(contents.chain)
    metas = [cert_to_meta(c) for c in certs]
    if len(metas) == 1:
        out["x509"] = metas[0]
    elif metas:
        out["x509_chain"] = metas
    warns: List[dict] = []
    for m in metas:
        warns.extend(cert_warnings(m))
    if warns:
        out["warnings"] = warns
    return out


def summarize(data: bytes, password: Optional[str] = None) -> Dict[str, Any]:
    base: Dict[str, Any] = {
        "format": "PKCS12",
        "size": len(data),
        "digest_sha256": sha256_hex(data),
        "well_formed": is_well_formed(data),
        **_mac_info(data),
    }
    try:
        contents = open_pfx(data, password)
    except Exception:
        return {**base, "encrypted": True, "error": "BadPasswordError"}
    return _summarize_loaded(base, contents)


def password_strength(password: str) -> int:
    """0..100 score; 20 points each for length > 5, length > 10, upper case, digit, symbol."""
    score = 0
    if len(password) > 5:
        score += 20
    if len(password) > 10:
        score += 20
    if re.search(r"[A-Z]", password):
        score += 20
    if re.search(r"[0-9]", password):
        score += 20
    if re.search(r"[^A-Za-z0-9]", password):
        score += 20
    return score


def strength_label(password: str) -> str:
    if not password:
        return ""
    score = password_strength(password)
    if score < 40:
        return "weak"
    if score < 80:
        return "medium"
    return "strong"
