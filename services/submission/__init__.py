from .backup import LocalBackupStore  # noqa: F401
from .client import SubmissionClient  # noqa: F401
from .pipeline import SubmissionPipeline  # noqa: F401
