import datetime as dt
from typing import Any, Dict, List, Optional, cast

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import NameOID

from .common import days_until, iso_utc, utc_now
from .entities import CertMetadata, Certificate


def name_to_cn(name: x509.Name) -> Optional[str]:
    try:
        value = name.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
    except IndexError:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


def validity_utc(cert: x509.Certificate) -> tuple[dt.datetime, dt.datetime]:
    return cert.not_valid_before_utc, cert.not_valid_after_utc


def extract(cert: Certificate) -> CertMetadata:
    """Common name and expiration date of a parsed certificate.

    A subject without a CN yields an empty string; the expiration date is the
    validity end truncated to its UTC calendar day.
    """
    return CertMetadata(common_name=cert.common_name or "", not_after=cert.not_after.date())


def _public_key_info(cert: x509.Certificate) -> Dict[str, Any]:
    pk = cert.public_key()
    if isinstance(pk, rsa.RSAPublicKey):
        return {"type": "RSA", "size": pk.key_size}
    if isinstance(pk, ec.EllipticCurvePublicKey):
        return {"type": "EC", "curve": getattr(pk.curve, "name", "EC")}
    if isinstance(pk, dsa.DSAPublicKey):
        return {"type": "DSA", "size": pk.key_size}
    if isinstance(pk, ed25519.Ed25519PublicKey):
        return {"type": "Ed25519"}
    if isinstance(pk, ed448.Ed448PublicKey):
        return {"type": "Ed448"}
    return {"type": pk.__class__.__name__}


def _san_list(cert: x509.Certificate) -> List[str]:
    try:
        ext = cert.extensions.get_extension_for_oid(x509.oid.ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
        san = cast(x509.SubjectAlternativeName, ext.value)
    except x509.ExtensionNotFound:
        return []
    out: List[str] = []
    for g in san:
        if isinstance(g, (x509.DNSName, x509.RFC822Name, x509.UniformResourceIdentifier)):
            out.append(g.value)
        elif isinstance(g, x509.IPAddress):
            out.append(str(g.value))
    return out


def _sig_hash(cert: x509.Certificate) -> Optional[str]:
    try:
        algo = cert.signature_hash_algorithm
    except Exception:
        return None
    return algo.name if isinstance(algo, hashes.HashAlgorithm) else None


def cert_to_meta(cert: Certificate) -> Dict[str, Any]:
    obj = cert.handle
    now = utc_now()
    return {
        "subject_dn": cert.subject,
        "issuer_dn": cert.issuer,
        "subject_cn": cert.common_name,
        "issuer_cn": name_to_cn(obj.issuer),
        "not_before": iso_utc(cert.not_before),
        "not_after": iso_utc(cert.not_after),
        "days_until_expiry": days_until(cert.not_after),
        "expired": cert.not_after < now,
        "not_yet_valid": cert.not_before > now,
        "public_key": _public_key_info(obj),
        "signature_hash": _sig_hash(obj),
        "fingerprint_sha256": obj.fingerprint(hashes.SHA256()).hex(),
        "san": _san_list(obj),
        "serial_hex": format(obj.serial_number, "x"),
    }


def cert_warnings(meta: Dict[str, Any]) -> List[dict]:
    out: List[dict] = []
    if meta.get("expired"):
        out.append({"code": "CERT_EXPIRED", "message": "Certificate is expired", "severity": "error"})
    else:
        days = int(meta.get("days_until_expiry", 0))
        if days <= 30:
            out.append({"code": "CERT_SOON_EXPIRES", "message": f"Certificate expires in {days} days", "severity": "warn"})

    pk = meta.get("public_key", {})
    if pk.get("type") == "RSA" and int(pk.get("size", 0)) < 2048:
        out.append({"code": "RSA_WEAK_KEY", "message": "RSA key size < 2048", "severity": "warn"})

    sig = (meta.get("signature_hash") or "").lower()
    if sig in {"md5", "sha1"}:
        out.append({"code": "WEAK_SIGNATURE_HASH", "message": f"Weak signature hash: {sig}", "severity": "warn"})
    return out
