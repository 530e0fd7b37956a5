from dataclasses import dataclass

from .exam_lifecycle import ExamStateMachine
from .notifier import Notifier, get_notifier
from .scheduler import ExamScheduler
from .store import ExamStore
from .submission_service import SubmissionStateMachine
from .violation_tracker import ViolationTracker


@dataclass
class LifecycleServices:
    store: ExamStore
    notifier: Notifier
    exams: ExamStateMachine
    submissions: SubmissionStateMachine
    violations: ViolationTracker
    scheduler: ExamScheduler


def create_services(session_factory=None, notifier: Notifier = None, violation_threshold: int = None,
                    **scheduler_options) -> LifecycleServices:
    """Wire the lifecycle services around one store and one notifier."""
    store = ExamStore(session_factory) if session_factory is not None else ExamStore()
    notifier = notifier or get_notifier()
    exams = ExamStateMachine(store)
    submissions = SubmissionStateMachine(store, notifier)
    violations = ViolationTracker(store, submissions, threshold=violation_threshold)
    scheduler = ExamScheduler(store, notifier, exams=exams, submissions=submissions, **scheduler_options)
    return LifecycleServices(store, notifier, exams, submissions, violations, scheduler)


__all__ = [
    "ExamStateMachine",
    "ExamScheduler",
    "ExamStore",
    "LifecycleServices",
    "Notifier",
    "SubmissionStateMachine",
    "ViolationTracker",
    "create_services",
    "get_notifier",
]
