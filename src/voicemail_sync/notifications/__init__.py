"""Real-time voicemail notifications."""

from voicemail_sync.notifications.channel import NotificationChannel

__all__ = ["NotificationChannel"]
