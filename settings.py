import os
from functools import lru_cache
from typing import Dict, List, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# env var -> shop config field used when the singleton is first created
SHOP_SEED_VARS = {
    "SHOP_NAME": "name",
    "CONTACT_PHONE": "phone",
    "CONTACT_EMAIL": "email",
    "CONTACT_ADDRESS": "address",
    "WHATSAPP_NUMBER": "whatsappNumber",
    "INSTAGRAM": "instagram",
}

ENV_FIELDS = {
    "DATABASE_URL": "database_url",
    "DATABASE_NAME": "database_name",
    "JWT_SECRET": "jwt_secret",
    "TOKEN_EXPIRE_DAYS": "token_expire_days",
    "ADMIN_BOOTSTRAP_USER": "admin_bootstrap_user",
    "ADMIN_BOOTSTRAP_PASS": "admin_bootstrap_pass",
    "BCRYPT_ROUNDS": "bcrypt_rounds",
    "UPLOAD_DIR": "upload_dir",
    "UPLOAD_BASE_URL": "upload_base_url",
    "MAX_UPLOAD_MB": "max_upload_mb",
    "ORDER_TRANSITIONS": "order_transitions",
    "STRICT_TOTALS": "strict_totals",
    "LOG_LEVEL": "log_level",
    "PORT": "port",
}


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    jwt_secret: str = Field("dev_secret_change_me", min_length=16)
    token_expire_days: int = Field(7, ge=1)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    admin_bootstrap_user: Optional[str] = None
    admin_bootstrap_pass: Optional[str] = None
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    upload_dir: str = "uploads"
    upload_base_url: str = "/uploads"
    max_upload_mb: int = Field(5, ge=1)
    order_transitions: Literal["permissive", "strict"] = "permissive"
    strict_totals: bool = False
    log_level: str = "INFO"
    port: int = 8000
    shop_defaults: Dict[str, str] = Field(default_factory=dict)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        values: Dict[str, object] = {}
        for var, field in ENV_FIELDS.items():
            raw = environ.get(var)
            if raw is not None and raw.strip():
                values[field] = raw.strip()
        origins = environ.get("CORS_ORIGIN") or environ.get("CLIENT_ORIGIN")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        values["shop_defaults"] = {
            field: environ[var].strip()
            for var, field in SHOP_SEED_VARS.items()
            if environ.get(var, "").strip()
        }
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
