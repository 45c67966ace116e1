"""
Notification service.

Pipelines report terminal outcomes through NotificationService. Delivery
happens on a background thread and every failure is logged and dropped, so
a broken channel never changes the status a pipeline already recorded.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import List, Optional

import requests

from dockhand.constants import HTTP_TIMEOUT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildEvent:
    """Outcome of a deployment run."""

    project: str
    application: str
    link: str
    kind: str = "application"
    error_message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.error_message is None


@dataclass(frozen=True)
class BackupEvent:
    """Outcome of a database backup."""

    project: str
    application: str
    database_type: str
    error_message: Optional[str] = None

    @property
    def type(self) -> str:
        return "success" if self.error_message is None else "error"


class Notifier:
    """A notification channel. Channels may raise; the service contains it."""

    def notify_build_success(self, event: BuildEvent) -> None:
        pass

    def notify_build_error(self, event: BuildEvent) -> None:
        pass

    def notify_backup(self, event: BackupEvent) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes notifications to the application log."""

    def notify_build_success(self, event):
        logger.info("Build succeeded: %s/%s (%s)", event.project, event.application, event.link)

    def notify_build_error(self, event):
        logger.error(
            "Build failed: %s/%s: %s (%s)",
            event.project,
            event.application,
            event.error_message,
            event.link,
        )

    def notify_backup(self, event):
        if event.error_message is None:
            logger.info(
                "Backup succeeded: %s/%s (%s)",
                event.project,
                event.application,
                event.database_type,
            )
        else:
            logger.error(
                "Backup failed: %s/%s (%s): %s",
                event.project,
                event.application,
                event.database_type,
                event.error_message,
            )


class WebhookNotifier(Notifier):
    """POSTs every notification as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        session: Optional[requests.Session] = None,
        timeout: int = HTTP_TIMEOUT,
    ):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, event_name: str, payload: dict) -> None:
        response = self.session.post(
            self.url,
            json={"event": event_name, **payload},
            timeout=self.timeout,
        )
        response.raise_for_status()

    def notify_build_success(self, event):
        self._post("build.success", asdict(event))

    def notify_build_error(self, event):
        self._post("build.error", asdict(event))

    def notify_backup(self, event):
        self._post(f"backup.{event.type}", asdict(event))


class NotificationService:
    """
    Fans notifications out to every channel, fire-and-forget.

    With synchronous=True delivery happens on the calling thread (still
    with failures contained), which keeps CLI runs and tests deterministic.
    """

    def __init__(self, notifiers: List[Notifier], synchronous: bool = False):
        self.notifiers = list(notifiers)
        self.synchronous = synchronous
        self._executor: Optional[ThreadPoolExecutor] = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="dockhand-notify"
            )

    def notify_build_success(self, event: BuildEvent) -> None:
        self._dispatch("notify_build_success", event)

    def notify_build_error(self, event: BuildEvent) -> None:
        self._dispatch("notify_build_error", event)

    def notify_backup(self, event: BackupEvent) -> None:
        self._dispatch("notify_backup", event)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the delivery thread pool."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _dispatch(self, method: str, event) -> None:
        for notifier in self.notifiers:
            if self._executor is None:
                self._deliver(notifier, method, event)
            else:
                self._executor.submit(self._deliver, notifier, method, event)

    @staticmethod
    def _deliver(notifier: Notifier, method: str, event) -> None:
        try:
            getattr(notifier, method)(event)
        except Exception as e:
            logger.warning(
                "Notification %s via %s failed: %s", method, type(notifier).__name__, e
            )
