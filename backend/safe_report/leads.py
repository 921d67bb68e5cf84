# backend/safe_report/leads.py
from __future__ import annotations

import datetime as dt
import json
import os
import tempfile
import threading
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import PersistenceWarning
from .log import get_logger
from .models import LeadFields, LeadRecord

LOG = get_logger("leads")


def _utcnow_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def normalize_lead(email: str, fields: Union[LeadFields, Dict[str, Any], None] = None) -> LeadRecord:
    if fields is None:
        fields = LeadFields()
    elif isinstance(fields, dict):
        fields = LeadFields.model_validate(fields)

    newsletter = fields.subscribe if fields.subscribe is not None else fields.newsletter
    return LeadRecord(
        timestamp=_utcnow_iso(),
        first_name=fields.first_name or "Unknown",
        last_name=fields.last_name or "",
        email=email,
        company=fields.company_name or fields.company or "",
        newsletter=bool(newsletter),
    )


class LeadRecorder:
    """
    Append-only lead store backed by a JSON array file.

    Writes go through a single writer lock and replace the file atomically, so
    concurrent requests in this process never drop each other's entries.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            msg = f"[Leads] {self.path.name} was invalid, resetting: {e}"
            LOG.warning(msg)
            warnings.warn(msg, PersistenceWarning, stacklevel=3)
            return []
        if not isinstance(data, list):
            msg = f"[Leads] {self.path.name} did not hold a list, resetting"
            LOG.warning(msg)
            warnings.warn(msg, PersistenceWarning, stacklevel=3)
            return []
        return data

    def _write(self, leads: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".leads_", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(leads, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def record(self, email: str, fields: Union[LeadFields, Dict[str, Any], None] = None) -> Optional[LeadRecord]:
        """Persist one lead. Never raises; failures are logged and None is returned."""
        try:
            lead = normalize_lead(email, fields)
            with self._lock:
                leads = self._load()
                leads.append(lead.model_dump(by_alias=True))
                self._write(leads)
            LOG.info(f"[Leads] Lead recorded: {email} ({len(leads)} total)")
            return lead
        except Exception as e:
            LOG.error(f"[Leads] Lead save failed for {email}: {e}", exc_info=True)
            return None

    def all(self) -> List[LeadRecord]:
        with self._lock:
            leads = self._load()
        return [LeadRecord.model_validate(item) for item in leads if isinstance(item, dict)]
