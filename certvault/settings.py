import os
from dataclasses import dataclass, field

PFX_SCHEMES = ("aes256", "legacy")

@dataclass(frozen=True)
class Settings:
    LOG_LEVEL: str = field(default="INFO")
    PFX_ENCRYPTION: str = field(default="aes256")
    PFX_FRIENDLY_NAME: str = field(default="CertVault-Bundle")

    @staticmethod
    def from_env() -> "Settings":
        log_level = os.getenv("CERTVAULT_LOG_LEVEL", "INFO").upper()
        scheme = os.getenv("CERTVAULT_PFX_ENCRYPTION", "aes256").strip().lower()
        if scheme not in PFX_SCHEMES:
            scheme = "aes256"
        friendly = os.getenv("CERTVAULT_PFX_FRIENDLY_NAME", "").strip() or "CertVault-Bundle"
        return Settings(LOG_LEVEL=log_level, PFX_ENCRYPTION=scheme, PFX_FRIENDLY_NAME=friendly)
