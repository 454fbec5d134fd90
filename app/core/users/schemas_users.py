from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CoreUser(BaseModel):
    """Schema for user's model, without the GitHub token"""

    id: str
    email: str
    name: str
    avatar: str | None = None
    is_admin: bool
    created_on: datetime

    model_config = ConfigDict(from_attributes=True)
