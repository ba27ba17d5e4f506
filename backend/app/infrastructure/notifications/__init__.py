"""
Notifications Infrastructure Module

Transactional email for subscription reminders.
"""

from app.infrastructure.notifications.email_service import ReminderEmailService

__all__ = ["ReminderEmailService"]
