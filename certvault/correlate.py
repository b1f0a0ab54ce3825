from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from .entities import Certificate, PrivateKey
from .errors import MismatchError


def _spki(pub) -> bytes:
    return pub.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)


def matches(cert: Certificate, key: PrivateKey) -> bool:
    """True when `key` is the private half of the public key embedded in `cert`."""
    try:
        return _spki(cert.handle.public_key()) == _spki(key.handle.public_key())
    except Exception:
        # unsupported or mixed key types never correspond
        return False


def ensure_matches(cert: Certificate, key: PrivateKey) -> None:
    if not matches(cert, key):
        raise MismatchError(f"private key does not belong to certificate '{cert.subject}'")
