from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class UserCreateRequest(BaseModel):
    """Registration payload. Required fields are checked by the route so the
    client gets the same message for any missing one."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    is_subscribed: Optional[bool] = Field(default=None, alias="isSubscribed")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    def missing_required(self) -> bool:
        return not (self.user_id and self.name and self.email)
