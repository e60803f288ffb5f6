"""User model: the notification-relevant view of a tracker user."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class UserRole(StrEnum):
    """Role of a tracker user."""

    ADMIN = "ADMIN"
    REVIEWER = "REVIEWER"
    USER = "USER"


class EmailFrequency(StrEnum):
    """Preferred email cadence."""

    IMMEDIATE = "IMMEDIATE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class EmailPreferences(BaseModel):
    """Email channel preferences."""

    enabled: bool = True
    frequency: EmailFrequency = EmailFrequency.IMMEDIATE


class ChatPreferences(BaseModel):
    """Chat channel preferences."""

    enabled: bool = False
    chat_user_id: str | None = None


class NotificationPreferences(BaseModel):
    """Per-channel notification preferences."""

    email: EmailPreferences = Field(default_factory=EmailPreferences)
    chat: ChatPreferences = Field(default_factory=ChatPreferences)


class User(BaseModel):
    """A user that can be assigned documents or receive notifications."""

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: UserRole = UserRole.USER
    is_active: bool = True
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences
    )

    @property
    def wants_email(self) -> bool:
        """True when this user accepts email notifications."""
        return self.is_active and self.notification_preferences.email.enabled

    @property
    def chat_target(self) -> str | None:
        """Chat user id when chat notifications are enabled, else None."""
        chat = self.notification_preferences.chat
        if self.is_active and chat.enabled and chat.chat_user_id:
            return chat.chat_user_id
        return None

    model_config = {"extra": "forbid"}
