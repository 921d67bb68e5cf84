# backend/safe_report/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Resolve backend/.env regardless of where uvicorn is launched
BACKEND_DIR = Path(__file__).resolve().parents[1]
DOTENV_PATH = BACKEND_DIR / ".env"
load_dotenv(dotenv_path=DOTENV_PATH)

PACKAGED_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

# Template order is the page order of the merged report
TEMPLATE_FILES = ("summary.html", "ownership.html", "terms.html")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_first(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


class Settings:
    """Environment-driven settings, read once per instance."""

    def __init__(self, **overrides):
        # HTTP
        self.port = int(os.getenv("PORT", "3005"))
        origins = os.getenv("CORS_ALLOW_ORIGINS", "*")
        self.cors_allow_origins: List[str] = [o.strip() for o in origins.split(",") if o.strip()]
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.send_email_mode = os.getenv("SEND_EMAIL_MODE", "background").strip().lower()

        # Lead store
        self.leads_file = Path(os.getenv("LEADS_FILE", str(BACKEND_DIR / "leads.json")))

        # Render surface
        self.templates_dir = Path(os.getenv("TEMPLATES_DIR", str(PACKAGED_TEMPLATES_DIR)))
        self.browser_executable_path = _env_first(
            "BROWSER_EXECUTABLE_PATH", "CHROME_PATH", "PUPPETEER_EXECUTABLE_PATH"
        )
        self.render_settle_ms = int(os.getenv("RENDER_SETTLE_MS", "150"))
        self.render_concurrent = _env_bool("RENDER_CONCURRENT", True)
        self.render_nav_timeout_ms = int(os.getenv("RENDER_NAV_TIMEOUT_MS", "30000"))

        # Email
        self.email_provider = os.getenv("EMAIL_PROVIDER", "auto").strip().lower()
        self.smtp_user = _env_first("SMTP_USER", "GMAIL_USER")
        self.smtp_pass = _env_first("SMTP_PASS", "GMAIL_PASS")
        self.smtp_host = os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.smtp_port = int(os.getenv("SMTP_PORT", "465"))
        self.smtp_security = (os.getenv("SMTP_SECURITY") or "").strip().lower() or None
        self.smtp_timeout = float(os.getenv("SMTP_TIMEOUT", "30"))
        self.resend_api_key = os.getenv("RESEND_API_KEY")
        self.email_from = os.getenv("EMAIL_FROM")
        self.email_verify_transport = _env_bool("EMAIL_VERIFY_TRANSPORT", False)

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

    @property
    def template_paths(self) -> List[Path]:
        return [self.templates_dir / name for name in TEMPLATE_FILES]

    @property
    def smtp_uses_implicit_tls(self) -> bool:
        if self.smtp_security:
            return self.smtp_security == "ssl"
        return self.smtp_port == 465


settings = Settings()
