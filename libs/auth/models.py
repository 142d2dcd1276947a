import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

STAFF_ROLES = frozenset({"STAFF", "ADMIN", "SUPER_ADMIN"})
ADMIN_ROLES = frozenset({"ADMIN", "SUPER_ADMIN"})


class AuthUser(BaseModel):
    """
    Claims carried by a verified access token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: uuid.UUID = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "CUSTOMER"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
