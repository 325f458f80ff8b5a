"""
Defines the core Pydantic data models for the application.

These models are the data contract between the transport client, the
conversation session and the store. Turns and stored records are frozen: once
created, nothing in the application mutates them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
Role = Literal[USER_ROLE, ASSISTANT_ROLE]

DEFAULT_CONVERSATION_ID = "default"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# --- Models ---
class Turn(BaseModel):
    """Represents a single role-tagged message within a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    images: Tuple[str, ...] = ()
    timestamp: datetime = Field(default_factory=utc_now)

    def to_message(self) -> Dict[str, Any]:
        """Returns the wire form sent to the chat endpoint."""
        message: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.images:
            message["images"] = list(self.images)
        return message


class TurnRecord(BaseModel):
    """A turn as persisted by a store, keyed by a monotonically increasing id."""

    model_config = ConfigDict(frozen=True)

    id: int
    conversation_id: str
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utc_now)

    def to_turn(self) -> Turn:
        return Turn(role=self.role, content=self.content, timestamp=self.timestamp)
