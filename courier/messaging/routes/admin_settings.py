from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from courier.auth.dependencies import require_admin
from courier.auth.models.user import User
from courier.db.session import get_db
from courier.messaging.schemas.settings import (
    MessagingSettingsResponse,
    MessagingSettingsUpdate,
    MessagingToggle,
)
from courier.messaging.services.messaging_service import MessagingService

router = APIRouter()


@router.get("/settings", response_model=MessagingSettingsResponse)
def get_settings(
    _current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MessagingSettingsResponse:
    service = MessagingService(db)
    return service.get_settings()


@router.put("/settings", response_model=MessagingSettingsResponse)
def update_settings(
    data: MessagingSettingsUpdate,
    _current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MessagingSettingsResponse:
    service = MessagingService(db)
    return service.update_settings(data)


@router.post("/settings/toggle", response_model=MessagingSettingsResponse)
def toggle_messaging(
    data: MessagingToggle,
    _current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MessagingSettingsResponse:
    service = MessagingService(db)
    return service.toggle_messaging_system(data.enabled)
