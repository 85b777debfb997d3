from .schemas import NotificationCounts

__all__ = ["NotificationCounts"]
