"""
Server side of the results contract: one submitted row becomes one stored
document. Retried batches may duplicate rows; the bonus record is an upsert.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from loguru import logger

from core.errors import ValidationError
from persistence.store import DocumentStore
from schemas.rows import (
    ATTENTION_EXPORT_FIELDS,
    BONUS_EXPORT_FIELDS,
    TRIAL_EXPORT_FIELDS,
    TrialRow,
    encode_table,
    iter_decoded_rows,
)

RESULTS = "result"
ATTENTION_CHECKS = "attention_checks"
BONUS_PAYMENTS = "bonus_payments"
SETTINGS = "settings"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultsGateway:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    def _stamp(self) -> str:
        return self.clock().isoformat()

    def save_rows(self, text: Optional[str]) -> int:
        if not text or not text.strip():
            raise ValidationError("No data received.")
        try:
            decoded = list(iter_decoded_rows(text))
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        timestamp = self._stamp()
        documents: List[Dict[str, Any]] = []
        for index, values in enumerate(decoded, start=1):
            try:
                row = TrialRow.from_fields(values)
            except ValueError as exc:
                raise ValidationError(f"Row {index}: {exc}") from exc
            doc = row.to_document()
            for key in ("trial_number", "trial_id", "risk_probability", "safe_probability"):
                if isinstance(doc.get(key), float) and doc[key].is_integer():
                    doc[key] = int(doc[key])
            doc["timestamp"] = timestamp
            documents.append(doc)
        accepted = self.store.insert_many(RESULTS, documents)
        logger.info(f"[Gateway] Stored {accepted} trial rows")
        return accepted

    def save_attention_checks(self, participant_id: Optional[str], rows: Optional[List[Mapping[str, Any]]]) -> int:
        if not participant_id or not rows:
            raise ValidationError("No attention check data or participant ID received.")
        saved_at = self._stamp()
        documents = [{**dict(r), "participant_id": participant_id, "saved_at": saved_at} for r in rows]
        accepted = self.store.insert_many(ATTENTION_CHECKS, documents)
        logger.info(f"[Gateway] Stored {accepted} attention check rows for {participant_id}")
        return accepted

    def save_bonus(self, record: Mapping[str, Any]) -> None:
        participant_id = record.get("participant_id")
        if not participant_id:
            raise ValidationError("No participant ID received.")
        values = {**dict(record), "saved_at": self._stamp()}
        self.store.update_one(BONUS_PAYMENTS, {"participant_id": participant_id}, values, upsert=True)

        trial_number = record.get("bonus_trial_number")
        if trial_number:
            try:
                amount = float(record.get("outcome_amount") or 0)
            except (TypeError, ValueError):
                amount = 0.0
            patched = self.store.update_one(
                RESULTS,
                {"participant_id": participant_id, "trial_number": int(trial_number)},
                {"is_bonus_trial": True, "bonus_amount": amount},
            )
            if not patched:
                logger.warning(f"[Gateway] No stored trial {trial_number} for {participant_id} to mark as bonus")
        logger.info(f"[Gateway] Saved bonus record for {participant_id}")

    def verify_access(self, url_path: str, password: str) -> Optional[bool]:
        """None when the export path is unknown, else whether the password matches."""
        settings = self.store.find_one(SETTINGS, {"url": url_path})
        if settings is None:
            return None
        return settings.get("password") == password

    def register_export(self, url_path: str, password: str) -> None:
        self.store.update_one(SETTINGS, {"url": url_path}, {"password": password}, upsert=True)

    def _export(self, collection: str, header: List[str], sort_key: str, defaults: Optional[Dict[str, Any]] = None) -> Optional[str]:
        docs = self.store.find(collection, sort_key=sort_key)
        if not docs:
            return None
        defaults = defaults or {}
        rows = [[doc.get(name, defaults.get(name)) for name in header] for doc in docs]
        return encode_table(header, rows)

    def export_trials(self) -> Optional[str]:
        return self._export(RESULTS, TRIAL_EXPORT_FIELDS, "timestamp", {"is_bonus_trial": False})

    def export_attention_checks(self) -> Optional[str]:
        return self._export(ATTENTION_CHECKS, ATTENTION_EXPORT_FIELDS, "timestamp")

    def export_bonus_payments(self) -> Optional[str]:
        return self._export(BONUS_PAYMENTS, BONUS_EXPORT_FIELDS, "saved_at", {"payment": "pending"})
