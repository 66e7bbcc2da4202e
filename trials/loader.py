"""Trial table loading.

Tables are CSV files with the columns in ``TRIAL_COLUMNS``; the Phase 2
template drops ``safe_reward`` (it is filled from the indifference points)
and adds ``phase2_trial``.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any, List, Optional, Sequence

import pandas as pd
from loguru import logger

from core.errors import TrialTableError
from trials.models import SizeCondition, TrialDefinition

TRIAL_COLUMNS = [
    "trial_id",
    "combination_id",
    "risk_probability",
    "risk_reward",
    "safe_reward",
    "size_condition",
    "expected_value",
]

PHASE2_COLUMNS = [
    "trial_id",
    "combination_id",
    "risk_probability",
    "risk_reward",
    "size_condition",
    "phase2_trial",
]

_SIZE_VALUES = {s.value for s in SizeCondition}


def _read_csv(path: Path, required: Sequence[str]) -> pd.DataFrame:
    try:
        frame = pd.read_csv(path, skipinitialspace=True)
    except FileNotFoundError as exc:
        raise TrialTableError(f"Trial table not found: {path}") from exc
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise TrialTableError(f"Failed to load trial table {path}: {exc}") from exc
    frame.columns = [str(c).strip() for c in frame.columns]
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise TrialTableError(f"Trial table {path} is missing columns: {', '.join(missing)}")
    if frame.empty:
        raise TrialTableError(f"Trial table {path} appears to be empty")
    return frame


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _as_int(value: Any, column: str, row: int) -> int:
    if _is_blank(value):
        raise TrialTableError(f"Row {row}: '{column}' is empty")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise TrialTableError(f"Row {row}: '{column}' is not a number ({value!r})") from exc
    if not number.is_integer():
        raise TrialTableError(f"Row {row}: '{column}' must be an integer ({value!r})")
    return int(number)


def _as_number(value: Any, column: str, row: int, allow_decimal: bool) -> float:
    if not allow_decimal:
        return _as_int(value, column, row)
    if _is_blank(value):
        raise TrialTableError(f"Row {row}: '{column}' is empty")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise TrialTableError(f"Row {row}: '{column}' is not a number ({value!r})") from exc


def _optional_int(value: Any, column: str, row: int) -> Optional[int]:
    if _is_blank(value):
        return None
    return _as_int(value, column, row)


def _check_invariants(defn: TrialDefinition, row: int) -> None:
    if not 0 <= defn.risk_probability <= 100:
        raise TrialTableError(f"Row {row}: risk_probability {defn.risk_probability} is not a percentage")
    if defn.risk_reward < 0 or defn.safe_reward < 0:
        raise TrialTableError(f"Row {row}: rewards must be non-negative")
    if defn.size_condition not in _SIZE_VALUES:
        logger.warning(f"[TrialLoader] Row {row}: unknown size condition '{defn.size_condition}'")


def load_trial_table(path: str | Path, allow_decimal: bool = False) -> List[TrialDefinition]:
    """Parse a trial table. ``allow_decimal`` keeps fractional safe rewards (ip mode)."""
    path = Path(path)
    frame = _read_csv(path, TRIAL_COLUMNS)
    has_phase2 = "phase2_trial" in frame.columns
    trials: List[TrialDefinition] = []
    seen_ids = set()
    for offset, record in enumerate(frame.to_dict(orient="records")):
        row = offset + 2  # header is line 1
        defn = TrialDefinition(
            trial_id=_as_int(record["trial_id"], "trial_id", row),
            combination_id=_optional_int(record["combination_id"], "combination_id", row),
            risk_probability=_as_int(record["risk_probability"], "risk_probability", row),
            risk_reward=_as_int(record["risk_reward"], "risk_reward", row),
            safe_reward=_as_number(record["safe_reward"], "safe_reward", row, allow_decimal),
            size_condition=str(record["size_condition"]).strip(),
            expected_value=_as_number(record["expected_value"], "expected_value", row, allow_decimal),
            phase2_trial=_optional_int(record.get("phase2_trial"), "phase2_trial", row) if has_phase2 else None,
        )
        _check_invariants(defn, row)
        if defn.trial_id in seen_ids:
            raise TrialTableError(f"Row {row}: duplicate trial_id {defn.trial_id}")
        seen_ids.add(defn.trial_id)
        trials.append(defn)
    logger.info(f"[TrialLoader] Loaded {len(trials)} trials from {path}")
    return trials


def load_phase2_template(path: str | Path) -> List[TrialDefinition]:
    """Phase 2 rows; ``safe_reward`` is a placeholder until indifference points exist."""
    path = Path(path)
    frame = _read_csv(path, PHASE2_COLUMNS)
    template: List[TrialDefinition] = []
    for offset, record in enumerate(frame.to_dict(orient="records")):
        row = offset + 2
        combination_id = _as_int(record["combination_id"], "combination_id", row)
        risk_probability = _as_int(record["risk_probability"], "risk_probability", row)
        risk_reward = _as_int(record["risk_reward"], "risk_reward", row)
        defn = TrialDefinition(
            trial_id=_as_int(record["trial_id"], "trial_id", row),
            combination_id=combination_id,
            risk_probability=risk_probability,
            risk_reward=risk_reward,
            safe_reward=0.0,
            size_condition=str(record["size_condition"]).strip(),
            expected_value=round(risk_probability / 100 * risk_reward, 2),
            phase2_trial=_as_int(record["phase2_trial"], "phase2_trial", row),
        )
        _check_invariants(defn, row)
        template.append(defn)
    logger.info(f"[TrialLoader] Loaded {len(template)} phase 2 template rows from {path}")
    return template


def load_dummy_trials(path: str | Path) -> List[TrialDefinition]:
    return load_trial_table(path, allow_decimal=True)
