from pydantic import BaseModel, ConfigDict, Field

from courier.core.datetime_utils import UTCDatetime


class MessagingSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enabled: bool
    max_message_length: int
    max_group_participants: int
    message_retention_days: int
    updated_at: UTCDatetime


class MessagingSettingsUpdate(BaseModel):
    enabled: bool | None = None
    max_message_length: int | None = Field(None, ge=1, le=10000)
    max_group_participants: int | None = Field(None, ge=2, le=500)
    message_retention_days: int | None = Field(None, ge=1, le=3650)


class MessagingToggle(BaseModel):
    enabled: bool
