# breakerlink/engine/alerts.py
"""
Alert collaborators.

The engine raises trip alerts through two narrow interfaces so that desktop
notifications, browser notifications or a buzzer stay outside the engine.
"""

from abc import ABC, abstractmethod

from breakerlink.core.logging_system import AlarmPriority, AlarmState, get_logger

__all__ = ["Notifier", "AlertSound", "LoggingNotifier", "SilentAlertSound"]


class Notifier(ABC):
    """Shows a user-facing notification."""

    @abstractmethod
    def notify(self, title: str, body: str) -> None: ...


class AlertSound(ABC):
    """Plays the trip alert sound."""

    @abstractmethod
    def play(self) -> None: ...


class LoggingNotifier(Notifier):
    """Default notifier: records the notification as an alarm log entry."""

    def __init__(self, device: str = "breaker_panel"):
        self.logger = get_logger(__name__, device=device)

    def notify(self, title: str, body: str) -> None:
        self.logger.log_alarm(
            message=f"{title}: {body}",
            priority=AlarmPriority.HIGH,
            state=AlarmState.ACTIVE,
        )


class SilentAlertSound(AlertSound):
    """Default alert sound: does nothing."""

    def play(self) -> None:
        pass
