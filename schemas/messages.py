from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Any


def _coerce_id(value: Any) -> Optional[str]:
    # Ids may arrive as numbers or ObjectId-like objects from other clients
    if value is None or value == "":
        return None
    return str(value)


class ChatUser(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    # Only compared or forwarded, never required to be strings
    email: Any = None
    name: Any = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any):
        return _coerce_id(value)


class ChatRef(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    # Items are left raw; anything that isn't a user object is skipped by `participants`
    users: list[Any] = Field(min_length=1)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any):
        return _coerce_id(value)

    @property
    def participants(self) -> list[ChatUser]:
        return [ChatUser.model_validate(user) for user in self.users if isinstance(user, dict)]


class Sender(ChatUser):
    id: str = Field(alias="_id")


class NewMessageEvent(BaseModel):
    """Inbound `new message` payload.

    Only a chat with users and a sender with an `_id` are required. The model is just the
    gate; the raw payload is what gets forwarded.
    """
    model_config = ConfigDict(extra="allow")

    sender: Sender
    content: Any = None
    chat: ChatRef

    @property
    def text(self) -> str:
        if self.content is None:
            return ""
        return self.content if isinstance(self.content, str) else str(self.content)
