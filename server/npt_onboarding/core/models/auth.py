from typing import Optional

from pydantic import BaseModel


class AdminTokenPayload(BaseModel):
    sub: str  # identity provider user id
    email: str
    name: str
    exp: int


class AdminUser(BaseModel):
    id: str
    email: str
    name: str


class AdminResolution(BaseModel):
    """Outcome of resolving the admin cookie for one request."""
    user: Optional[AdminUser] = None
    has_invalid_cookie: bool = False

    @property
    def is_admin(self) -> bool:
        return self.user is not None
