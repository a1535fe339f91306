from typing import Any

from courier.auth.models.user import User
from courier.core.security import create_access_token


def make_token(user: User) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})


def create_auth_headers(user: User) -> dict[str, str]:
    """Create Authorization headers with a Bearer access token for the user."""
    return {"Authorization": f"Bearer {make_token(user)}"}


def assert_error_envelope(data: dict[str, Any], code: str) -> None:
    assert data["success"] is False
    assert data["error"]["code"] == code
    assert data["error"]["message"]
