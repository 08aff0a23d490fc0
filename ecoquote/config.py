from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class SmtpConfig(BaseModel):
    enabled: bool = False
    host: str = "localhost"
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    from_email: str = "presupuestos@ecoquote.local"
    use_tls: bool = True
    subject: str = "Tu presupuesto {brand} {model}"


class GeminiConfig(BaseModel):
    api_key: Optional[str] = None
    model: str = "gemini-2.5-flash"


class DisplayConfig(BaseModel):
    currency_symbol: str = "€"
    decimals: int = 0
    default_language: str = "es"


class AppConfig(BaseModel):
    data_dir: str = "data"
    files_dir: str = "data/files"
    public_base_url: str = "http://localhost:8000"
    admin_password: str = "admin123"
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)

    @property
    def files_url(self) -> str:
        return self.public_base_url.rstrip("/") + "/files"


# (env var, dotted path in AppConfig, cast)
ENV_OVERRIDES = [
    ("ECOQUOTE_DATA_DIR", "data_dir", str),
    ("ECOQUOTE_FILES_DIR", "files_dir", str),
    ("ECOQUOTE_PUBLIC_URL", "public_base_url", str),
    ("ECOQUOTE_ADMIN_PASSWORD", "admin_password", str),
    ("ECOQUOTE_LOG_LEVEL", "log_level", str),
    ("ECOQUOTE_LOG_DIR", "log_dir", str),
    ("SMTP_HOST", "smtp.host", str),
    ("SMTP_PORT", "smtp.port", int),
    ("SMTP_USER", "smtp.user", str),
    ("SMTP_PASSWORD", "smtp.password", str),
    ("SMTP_FROM", "smtp.from_email", str),
    ("GEMINI_API_KEY", "gemini.api_key", str),
]


def _load_yaml(path: Path) -> Dict:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _set_dotted(data: Dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    node = data
    for key in parents:
        node = node.setdefault(key, {})
    node[leaf] = value


def load_config(path: Optional[str] = None, env_file: Optional[str] = None) -> AppConfig:
    """Load ``configs/app.yaml`` (or ``path``) and apply environment overrides."""
    if env_file and os.path.exists(env_file):
        load_dotenv(env_file)
    else:
        load_dotenv()

    cfg_path = Path(path or os.getenv("ECOQUOTE_CONFIG", "configs/app.yaml"))
    data: Dict[str, Any] = _load_yaml(cfg_path) if cfg_path.exists() else {}

    for env_name, dotted, cast in ENV_OVERRIDES:
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        _set_dotted(data, dotted, cast(raw))
    if os.getenv("SMTP_HOST"):
        data.setdefault("smtp", {}).setdefault("enabled", True)

    return AppConfig(**data)
