from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from core.models import Session

DEFAULT_DIR = Path("results/backups")


class LocalBackupStore:
    """JSON mirror of a session, one file per participant. Writes are best effort."""

    def __init__(self, directory: Path = DEFAULT_DIR):
        self.directory = Path(directory)

    def _path(self, participant_id: str) -> Path:
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in participant_id)
        return self.directory / f"risk_survey_backup_{safe_id}.json"

    def save(self, session: Session) -> bool:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(session.to_backup(), indent=2)
            tmp = self._path(session.participant_id).with_suffix(".tmp")
            tmp.write_text(payload)
            tmp.replace(self._path(session.participant_id))
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.warning(f"[Backup] Could not save backup for {session.participant_id}: {exc}")
            return False

    def load(self, participant_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(participant_id)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text())
        except (OSError, ValueError) as exc:
            logger.warning(f"[Backup] Could not read backup for {participant_id}: {exc}")
            return None

    def exists(self, participant_id: str) -> bool:
        return self._path(participant_id).exists()

    def clear(self, participant_id: str) -> None:
        try:
            self._path(participant_id).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(f"[Backup] Could not remove backup for {participant_id}: {exc}")

    def status(self, participant_id: str) -> str:
        if self.exists(participant_id):
            return "Backup saved locally - please contact researcher"
        return "No backup available"
