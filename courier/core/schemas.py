"""Core schema definitions shared across response models."""

from typing import Any

from pydantic import BaseModel


class StatusMessage(BaseModel):
    """Plain acknowledgement body for mutations without a resource payload."""

    message: str
    data: dict[str, Any] | None = None
