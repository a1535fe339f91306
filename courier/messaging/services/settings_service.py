import logging

from sqlalchemy.orm import Session

from courier.messaging.models.messaging_settings import MessagingSettings
from courier.messaging.schemas.settings import MessagingSettingsUpdate

logger = logging.getLogger(__name__)


class MessagingSettingsService:
    """Accessor for the singleton MessagingSettings row.

    Callers fetch the settings once per operation and pass the object down
    rather than reading it repeatedly.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_settings(self) -> MessagingSettings:
        """Return the settings row, creating it with defaults on first access."""
        settings = self.db.query(MessagingSettings).order_by(MessagingSettings.created_at).first()
        if settings is None:
            settings = MessagingSettings()
            self.db.add(settings)
            self.db.commit()
            self.db.refresh(settings)
            logger.info("Created default messaging settings")
        return settings

    def update_settings(self, data: MessagingSettingsUpdate) -> MessagingSettings:
        settings = self.get_settings()
        for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(settings, key, value)
        self.db.commit()
        self.db.refresh(settings)
        logger.info("Messaging settings updated: %s", data.model_dump(exclude_none=True))
        return settings

    def toggle_messaging_system(self, enabled: bool) -> MessagingSettings:
        return self.update_settings(MessagingSettingsUpdate(enabled=enabled))
