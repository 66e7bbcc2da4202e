"""Canonical trial-row schema shared by the client row log and the server parser.

Rows travel as comma-separated lines in the field order of
``TRIAL_ROW_FIELDS``. Both sides go through ``TrialRow`` so fields are read
and patched by name, never by position.
"""

from __future__ import annotations

import csv
import io
import math
from dataclasses import asdict, dataclass, fields
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Sequence

if TYPE_CHECKING:
    from core.models import TrialResult

TRIAL_ROW_FIELDS = [
    "participant_id",
    "trial_number",
    "bar_size_condition",
    "choice",
    "confidence",
    "risk_probability",
    "risk_reward",
    "safe_probability",
    "safe_reward",
    "risk_position",
    "safe_position",
    "ev",
    "bar_choice_time",
    "confidence_choice_time",
    "trial_id",
    "is_bonus_trial",
    "bonus_amount",
]

NUMERIC_ROW_FIELDS = {
    "trial_number",
    "confidence",
    "risk_probability",
    "risk_reward",
    "safe_probability",
    "safe_reward",
    "bar_choice_time",
    "confidence_choice_time",
    "trial_id",
    "bonus_amount",
}

TRIAL_EXPORT_FIELDS = TRIAL_ROW_FIELDS + ["timestamp"]

ATTENTION_EXPORT_FIELDS = [
    "participant_id",
    "attention_check_number",
    "question_type",
    "question_prompt",
    "correct_answer",
    "user_answer",
    "is_correct",
    "response_time",
    "timestamp",
    "session_id",
]

BONUS_EXPORT_FIELDS = [
    "participant_id",
    "bonus_trial_id",
    "bonus_trial_number",
    "choice_on_bonus",
    "outcome_amount",
    "payment",
]

_MISSING = {"", "null", "undefined", "None"}


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if value.is_integer():
            return str(int(value))
    return str(value)


def parse_number(raw: str) -> Optional[float]:
    raw = raw.strip()
    if raw in _MISSING:
        return None
    return float(raw)


def parse_bool(raw: str) -> bool:
    return raw.strip() in ("TRUE", "true", "1")


def encode_row(values: Sequence[Any]) -> str:
    # the writer only quotes characters found in its terminator, so CR must be in it
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\r\n").writerow([format_value(v) for v in values])
    return buf.getvalue()[:-2]


def decode_row(line: str) -> List[str]:
    try:
        rows = list(csv.reader(io.StringIO(line)))
    except csv.Error as exc:
        raise ValueError(f"malformed row: {exc}") from exc
    if len(rows) != 1:
        raise ValueError(f"expected exactly one row, got {len(rows)}")
    return rows[0]


def iter_decoded_rows(text: str) -> Iterator[List[str]]:
    try:
        for values in csv.reader(io.StringIO(text)):
            if not values or all(not v.strip() for v in values):
                continue
            yield values
    except csv.Error as exc:
        raise ValueError(f"malformed row data: {exc}") from exc


def encode_table(header: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    lines = [",".join(header)] + [encode_row(r) for r in rows]
    return "\n".join(lines)


@dataclass
class TrialRow:
    participant_id: str
    trial_number: int
    bar_size_condition: str
    choice: str
    confidence: Optional[float]
    risk_probability: Optional[float]
    risk_reward: Optional[float]
    safe_probability: Optional[float]
    safe_reward: Optional[float]
    risk_position: str
    safe_position: str
    ev: str
    bar_choice_time: Optional[float]
    confidence_choice_time: Optional[float]
    trial_id: Optional[float]
    is_bonus_trial: bool = False
    bonus_amount: Optional[float] = None

    @classmethod
    def from_result(cls, result: "TrialResult") -> "TrialRow":
        return cls(
            participant_id=result.participant_id or "unknown",
            trial_number=result.trial_number,
            bar_size_condition=result.size_condition or "unknown",
            choice=result.choice.value,
            confidence=result.confidence,
            risk_probability=result.risk_probability,
            risk_reward=result.risk_reward,
            safe_probability=100,
            safe_reward=result.safe_reward,
            risk_position=result.risk_position,
            safe_position=result.safe_position,
            ev=result.ev.value,
            bar_choice_time=result.bar_choice_time,
            confidence_choice_time=result.confidence_choice_time,
            trial_id=result.trial_id,
            is_bonus_trial=result.is_bonus_trial,
            bonus_amount=result.bonus_amount,
        )

    @classmethod
    def from_fields(cls, values: Sequence[str]) -> "TrialRow":
        if len(values) != len(TRIAL_ROW_FIELDS):
            raise ValueError(f"row has {len(values)} values but expected {len(TRIAL_ROW_FIELDS)}")
        raw = dict(zip(TRIAL_ROW_FIELDS, values))
        parsed: Dict[str, Any] = {}
        for name, value in raw.items():
            if name == "is_bonus_trial":
                parsed[name] = parse_bool(value)
            elif name in NUMERIC_ROW_FIELDS:
                parsed[name] = parse_number(value)
            else:
                parsed[name] = value
        trial_number = parsed["trial_number"]
        parsed["trial_number"] = int(trial_number) if trial_number is not None else 0
        return cls(**parsed)

    @classmethod
    def decode(cls, line: str) -> "TrialRow":
        return cls.from_fields(decode_row(line))

    def to_fields(self) -> List[Any]:
        return [getattr(self, f.name) for f in fields(self)]

    def encode(self) -> str:
        return encode_row(self.to_fields())

    def to_document(self) -> Dict[str, Any]:
        """Dict for storage; NaN sentinels become None so the record stays valid JSON."""
        doc = asdict(self)
        for key, value in doc.items():
            if isinstance(value, float) and math.isnan(value):
                doc[key] = None
        return doc


class RowLog:
    """Append-only log of encoded rows; the only mutation is the bonus-marker patch."""

    def __init__(self, lines: Optional[List[str]] = None):
        self._lines: List[str] = list(lines or [])

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self._lines)

    def append(self, row: TrialRow) -> None:
        self._lines.append(row.encode())

    def lines(self, start: int = 0) -> List[str]:
        return list(self._lines[start:])

    def to_text(self, start: int = 0) -> str:
        return "".join(line + "\n" for line in self._lines[start:])

    def patch_bonus(self, trial_number: int, bonus_amount: float) -> bool:
        for idx, line in enumerate(self._lines):
            row = TrialRow.decode(line)
            if row.trial_number == trial_number:
                row.is_bonus_trial = True
                row.bonus_amount = bonus_amount
                self._lines[idx] = row.encode()
                return True
        return False
