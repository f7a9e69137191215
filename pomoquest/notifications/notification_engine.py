"""Notification sink for progression events."""

from typing import Any, Callable, Dict, Iterable, List

import structlog

from pomoquest.gamification.achievements import ACHIEVEMENTS_BY_ID
from pomoquest.models.progression import Notification, NotificationKind

logger = structlog.get_logger()

Subscriber = Callable[[str, Notification, Dict[str, str]], None]


class NotificationEngine:
    """Pushes progression notifications to UI subscribers.

    Subscribers are called synchronously, in registration order, once per
    notification. A subscriber that raises is logged and skipped; the rest
    still receive the notification.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, user_id: str, notifications: Iterable[Notification]) -> int:
        """Deliver notifications in order. Returns how many were delivered."""
        delivered = 0
        for notification in notifications:
            message = self.render(notification)
            for callback in list(self._subscribers):
                try:
                    callback(user_id, notification, message)
                except Exception as e:
                    logger.error(
                        "Notification subscriber failed",
                        user_id=user_id,
                        kind=notification.kind.value,
                        error=str(e),
                    )
            delivered += 1
            logger.info("Notification published", user_id=user_id, kind=notification.kind.value)
        return delivered

    def render(self, notification: Notification) -> Dict[str, str]:
        """Generate title and message text for a notification."""
        templates = {
            NotificationKind.LEVEL_UP: {
                "title": "Level Up!",
                "message": "Amazing! You've reached level {level}!"
            },
            NotificationKind.ACHIEVEMENT_UNLOCKED: {
                "title": "Achievement Unlocked!",
                "message": "You've unlocked '{name}'! +{reward} XP"
            },
            NotificationKind.CHARACTER_EVOLVED: {
                "title": "Your Character Evolved!",
                "message": "{character_name} reached form {level}."
            },
            NotificationKind.GAME_UNLOCKED: {
                "title": "New Mini-Game!",
                "message": "{name} is now available during breaks."
            },
        }

        template = templates[notification.kind]
        data: Dict[str, Any] = dict(notification.payload)
        if notification.kind == NotificationKind.ACHIEVEMENT_UNLOCKED and "name" not in data:
            achievement = ACHIEVEMENTS_BY_ID.get(data.get("achievement_id"))
            data["name"] = achievement.name if achievement else data.get("achievement_id")

        message = template["message"]
        for key, value in data.items():
            message = message.replace(f"{{{key}}}", str(value))

        return {"title": template["title"], "message": message}
