from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Tuple

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding


@dataclass(frozen=True)
class Certificate:
    common_name: str
    subject: str
    issuer: str
    not_before: dt.datetime
    not_after: dt.datetime
    der: bytes = field(repr=False)
    handle: x509.Certificate = field(repr=False, compare=False)

    def pem(self) -> str:
        return self.handle.public_bytes(Encoding.PEM).decode("ascii")


@dataclass(frozen=True)
class PrivateKey:
    algorithm: str
    algorithm_oid: str
    der: bytes = field(repr=False)  # unencrypted PKCS#8
    handle: Any = field(repr=False, compare=False)


ChainBundle = Tuple[Certificate, ...]


@dataclass(frozen=True)
class CertMetadata:
    common_name: str
    not_after: dt.date
