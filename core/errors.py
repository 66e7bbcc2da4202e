from __future__ import annotations

from typing import Optional

CONTACT_RESEARCHER = "Please contact the researcher."


class SurveyError(Exception):
    """Base class for every error raised by the survey core."""

    user_message: str = "An unexpected error occurred. " + CONTACT_RESEARCHER


class ConfigurationError(SurveyError):
    """Study config or trial table could not be loaded. Fatal to the session."""

    user_message = "Could not load experiment configuration. " + CONTACT_RESEARCHER


class TrialTableError(ConfigurationError):
    pass


class ValidationError(SurveyError):
    """Participant input rejected locally; the caller re-prompts without advancing."""

    def __init__(self, message: str):
        super().__init__(message)
        self.user_message = message


class SubmissionError(SurveyError):
    user_message = "There was an error saving your data. Please try again."

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SubmissionTimeout(SubmissionError):
    user_message = "Request timed out - the server may be slow to respond. Please try again."


class NetworkUnreachable(SubmissionError):
    user_message = (
        "Network error - unable to reach the server. "
        "Please check your internet connection and try again."
    )


class ServerError(SubmissionError):
    user_message = "The server could not store your data. Please try again."
