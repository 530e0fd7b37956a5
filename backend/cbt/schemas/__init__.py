from .violation import ViolationReport, ViolationMetadata, ViolationRead, ViolationStats
from .submission import SubmissionRead

__all__ = [
    "ViolationReport",
    "ViolationMetadata",
    "ViolationRead",
    "ViolationStats",
    "SubmissionRead",
]
