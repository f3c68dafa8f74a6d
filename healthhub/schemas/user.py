"""Account profile and preferences."""

from typing import Literal

from pydantic import EmailStr, Field

from healthhub.schemas.utils import CamelModel

Theme = Literal["light", "dark", "system"]


class ProfileUpdate(CamelModel):
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    profile_picture: str | None = Field(None, max_length=1024)


class ThemeUpdate(CamelModel):
    theme: Theme


class NotificationPreferences(CamelModel):
    email_notifications: bool = True
    push_notifications: bool = True
    care_gap_alerts: bool = True
    medication_reminders: bool = True
    appointment_reminders: bool = True
    health_summaries: bool = True


class NotificationPreferencesUpdate(CamelModel):
    """Partial update; omitted keys keep their stored value."""

    email_notifications: bool | None = None
    push_notifications: bool | None = None
    care_gap_alerts: bool | None = None
    medication_reminders: bool | None = None
    appointment_reminders: bool | None = None
    health_summaries: bool | None = None
