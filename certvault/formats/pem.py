from __future__ import annotations

import re
import textwrap
from typing import Iterator, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_pem_private_key,
)

from ..entities import Certificate, PrivateKey
from ..errors import PASSWORD_REQUIRED, ParseError
from ..x509meta import name_to_cn, validity_utc
from . import pkcs8

CERT_LABELS = ("CERTIFICATE", "X509 CERTIFICATE")
KEY_LABELS = (
    "PRIVATE KEY",
    "ENCRYPTED PRIVATE KEY",
    "RSA PRIVATE KEY",
    "EC PRIVATE KEY",
    "DSA PRIVATE KEY",
)

BEGIN_CERT = "-----BEGIN CERTIFICATE-----"
END_CERT = "-----END CERTIFICATE-----"

_BLOCK = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----(.*?)-----END \1-----", re.DOTALL)

Text = Union[str, bytes]


def normalize(text: Text) -> str:
    if isinstance(text, bytes):
        text = text.decode("utf-8", "replace")
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def _canonical(label: str, body: str) -> str:
    lines = [line.strip() for line in body.split("\n") if line.strip()]
    # RFC 1421 headers (Proc-Type, DEK-Info) never occur in base64 payload lines
    headers = [line for line in lines if ":" in line]
    payload = "".join(line for line in lines if ":" not in line)
    out = [f"-----BEGIN {label}-----", *headers]
    if headers:
        out.append("")
    out.extend(textwrap.wrap(payload, 64))
    out.append(f"-----END {label}-----")
    return "\n".join(out) + "\n"


def iter_blocks(text: Text) -> Iterator[Tuple[str, str]]:
    """Yield (label, canonical PEM) for every delimited block, in source order."""
    for m in _BLOCK.finditer(normalize(text)):
        yield m.group(1), _canonical(m.group(1), m.group(2))


def certificate_from_x509(obj: x509.Certificate) -> Certificate:
    nb, na = validity_utc(obj)
    return Certificate(
        common_name=name_to_cn(obj.subject) or "",
        subject=obj.subject.rfc4514_string(),
        issuer=obj.issuer.rfc4514_string(),
        not_before=nb,
        not_after=na,
        der=obj.public_bytes(Encoding.DER),
        handle=obj,
    )


def private_key_from_handle(key) -> PrivateKey:
    der = key.private_bytes(Encoding.DER, PrivateFormat.PKCS8, NoEncryption())
    name, oid = pkcs8.identify(der, key)
    return PrivateKey(algorithm=name, algorithm_oid=oid, der=der, handle=key)


def parse_certificate(text: Text) -> Certificate:
    for label, block in iter_blocks(text):
        if label not in CERT_LABELS:
            continue
        try:
            return certificate_from_x509(x509.load_pem_x509_certificate(block.encode("ascii")))
        except Exception as exc:
            raise ParseError(f"undecodable {label} block") from exc
    raise ParseError("no CERTIFICATE block found")


def _is_encrypted(label: str, block: str) -> bool:
    return label == "ENCRYPTED PRIVATE KEY" or "Proc-Type: 4,ENCRYPTED" in block


def parse_private_key(text: Text, password: Optional[str] = None) -> PrivateKey:
    for label, block in iter_blocks(text):
        if label not in KEY_LABELS:
            continue
        encrypted = _is_encrypted(label, block)
        if encrypted and not password:
            raise ParseError("private key is encrypted", reason=PASSWORD_REQUIRED)
        pwd = password.encode("utf-8") if encrypted and password else None
        try:
            key = load_pem_private_key(block.encode("ascii"), password=pwd)
            return private_key_from_handle(key)
        except Exception as exc:
            raise ParseError(f"undecodable {label} block") from exc
    raise ParseError("no PRIVATE KEY block found")
