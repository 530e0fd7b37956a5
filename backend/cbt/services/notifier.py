from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable
import asyncio
import html
import smtplib
import logging

from ..core.config import settings
from ..core.exceptions import NotificationError
from ..utils.timezone import format_exam_time

logger = logging.getLogger(__name__)


class Notifier:
    """Fire-and-forget notification boundary. Return values are ignored by callers."""

    def send_exam_start_reminder(self, student, exam) -> None:
        raise NotImplementedError

    def send_exam_end_warning(self, student, exam) -> None:
        raise NotImplementedError

    def send_submission_confirmation(self, student, exam, submission) -> None:
        raise NotImplementedError


def dispatch(send: Callable, *args) -> bool:
    """Call a notifier method; failures are logged and swallowed."""
    try:
        send(*args)
        return True
    except Exception as exc:
        error = exc if isinstance(exc, NotificationError) else NotificationError(str(exc))
        logger.error(f"Notification {getattr(send, '__name__', send)} failed: {error.message}")
        return False


def as_html(text: str) -> str:
    paragraphs = [p.replace("\n", "<br>") for p in html.escape(text).split("\n\n") if p]
    return "".join(f"<p>{p}</p>" for p in paragraphs)


def build_exam_reminder(student, exam, lead_minutes: int) -> dict:
    start = format_exam_time(exam.start_time)
    return {
        "to": student.email,
        "subject": f"Exam Reminder - starts in {lead_minutes} minutes",
        "text": (
            f"Hello {student.fullname},\n\n"
            f"Your exam {exam.title or exam.id} starts at {start} "
            f"and lasts {exam.duration} minutes.\n"
        ),
    }


def build_end_warning(student, exam, lead_minutes: int) -> dict:
    end = format_exam_time(exam.end_time)
    return {
        "to": student.email,
        "subject": f"Exam Ending Soon - {lead_minutes} Minutes Remaining",
        "text": (
            f"Hello {student.fullname},\n\n"
            f"Your exam {exam.title or exam.id} ends at {end}. "
            "Please review your answers and submit before time runs out. "
            "Unsubmitted exams will be auto-submitted.\n"
        ),
    }


def build_submission_confirmation(student, exam, submission) -> dict:
    submitted = format_exam_time(submission.submitted_at) if submission.submitted_at else ""
    text = (
        f"Hello {student.fullname},\n\n"
        f"Your submission for exam {exam.title or exam.id} was received at {submitted}.\n"
    )
    if submission.flag_reason:
        text += f"Note: {submission.flag_reason}\n"
    return {
        "to": student.email,
        "subject": "Exam Submission Confirmation",
        "text": text,
    }


class EmailNotifier(Notifier):
    """Delivers mail synchronously over SMTP. Used inside Celery tasks."""

    def __init__(self, host: str = None, port: int = None, username: str = None,
                 password: str = None, use_tls: bool = None, sender: str = None,
                 lead_minutes: int = None):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username or settings.smtp_user_email
        self.password = password or settings.smtp_user_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.sender = sender or settings.mail_from
        self.lead_minutes = lead_minutes or settings.reminder_lead_minutes

    def send_message(self, message: dict) -> None:
        if not message.get("to"):
            raise NotificationError("Recipient has no email address")
        if not self.host:
            raise NotificationError("SMTP host is not configured")

        mime = MIMEMultipart("alternative")
        mime["From"] = self.sender
        mime["To"] = message["to"]
        mime["Subject"] = message["subject"]
        mime.attach(MIMEText(message["text"], "plain"))
        mime.attach(MIMEText(as_html(message["text"]), "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, [message["to"]], mime.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Failed to send mail to {message['to']}: {exc}") from exc

        logger.info(f"Email sent to {message['to']} (subject: {message['subject']})")

    def send_exam_start_reminder(self, student, exam) -> None:
        self.send_message(build_exam_reminder(student, exam, self.lead_minutes))

    def send_exam_end_warning(self, student, exam) -> None:
        self.send_message(build_end_warning(student, exam, self.lead_minutes))

    def send_submission_confirmation(self, student, exam, submission) -> None:
        self.send_message(build_submission_confirmation(student, exam, submission))


class BackgroundEmailNotifier(EmailNotifier):
    """SMTP delivery for async callers.

    Each message is handed to the loop's default executor and not awaited,
    so a sweep or a submit never waits on the mail server. Outside a running
    loop it delivers inline like ``EmailNotifier``.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.pending = set()

    def send_message(self, message: dict) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            super().send_message(message)
            return

        future = loop.run_in_executor(None, super().send_message, message)
        self.pending.add(future)
        future.add_done_callback(self._delivered)

    def _delivered(self, future) -> None:
        self.pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Background mail delivery failed: {exc}")


class LoggingNotifier(Notifier):
    """Development notifier: logs what would have been sent."""

    def send_exam_start_reminder(self, student, exam) -> None:
        logger.info(f"Start reminder would be sent to {student.email} for exam {exam.id}")

    def send_exam_end_warning(self, student, exam) -> None:
        logger.info(f"End warning would be sent to {student.email} for exam {exam.id}")

    def send_submission_confirmation(self, student, exam, submission) -> None:
        logger.info(f"Submission confirmation would be sent to {student.email} for submission {submission.id}")


class CeleryNotifier(Notifier):
    """Enqueues delivery on the notifications queue and returns immediately."""

    def send_exam_start_reminder(self, student, exam) -> None:
        from ..tasks.notifications import send_exam_start_reminder
        send_exam_start_reminder.delay(student.id, exam.id)

    def send_exam_end_warning(self, student, exam) -> None:
        from ..tasks.notifications import send_exam_end_warning
        send_exam_end_warning.delay(student.id, exam.id)

    def send_submission_confirmation(self, student, exam, submission) -> None:
        from ..tasks.notifications import send_submission_confirmation
        send_submission_confirmation.delay(submission.id)


def get_notifier(backend: str = None) -> Notifier:
    if backend is None:
        # Without SMTP credentials nothing could be delivered
        backend = settings.notification_backend if settings.smtp_configured else "log"
    backend = backend.lower()
    if backend == "celery":
        return CeleryNotifier()
    if backend == "email":
        return BackgroundEmailNotifier()
    return LoggingNotifier()
