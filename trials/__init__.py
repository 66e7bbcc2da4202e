"""Trial tables, runtime trial records and sequence construction."""

from trials.models import AttentionCheckQuestion, QuestionType, SizeCondition, Trial, TrialDefinition
from trials.loader import load_dummy_trials, load_phase2_template, load_trial_table

__all__ = [
    "AttentionCheckQuestion",
    "QuestionType",
    "SizeCondition",
    "Trial",
    "TrialDefinition",
    "load_trial_table",
    "load_phase2_template",
    "load_dummy_trials",
]
