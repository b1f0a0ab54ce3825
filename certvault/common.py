
import base64
import datetime as dt
import hashlib

PKCS12_MEDIA_TYPE = "application/x-pkcs12"
_PKCS12_URI_PREFIX = f"data:{PKCS12_MEDIA_TYPE};base64,"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()

def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)

def today_utc() -> dt.date:
    return utc_now().date()

def as_utc(d: dt.datetime) -> dt.datetime:
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    return d.astimezone(dt.timezone.utc)

def iso_utc(d: dt.datetime) -> str:
    return as_utc(d).isoformat().replace("+00:00", "Z")

def days_until(ts: dt.datetime) -> int:
    delta = as_utc(ts) - utc_now()
    return int(delta.total_seconds() // 86400)

def to_epoch_ms(d: dt.datetime) -> int:
    return int(as_utc(d).timestamp() * 1000)

def from_epoch_ms(ms: int) -> dt.datetime:
    return dt.datetime.fromtimestamp(int(ms) / 1000, tz=dt.timezone.utc)

def pkcs12_data_uri(der: bytes) -> str:
    return _PKCS12_URI_PREFIX + base64.b64encode(der).decode("ascii")

def strip_data_uri(content: str) -> str:
    # "data:<mime>;base64,<payload>" -> "<payload>"
    if content.startswith("data:") and ";base64," in content:
        return content.split(";base64,", 1)[1]
    return content
