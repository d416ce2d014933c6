"""
Pydantic schemas for the conversation log.

Defines turns and the wire messages sent to the reply endpoint.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


WireRole = Literal["system", "user", "assistant"]


class TurnRole(str, Enum):
    """Who contributed a turn."""

    HUMAN = "human"
    MACHINE = "machine"
    DIRECTIVE = "directive"

    @property
    def wire_role(self) -> WireRole:
        """Role name understood by the completion service."""
        return _WIRE_ROLES[self]


_WIRE_ROLES: dict[TurnRole, WireRole] = {
    TurnRole.HUMAN: "user",
    TurnRole.MACHINE: "assistant",
    TurnRole.DIRECTIVE: "system",
}


class WireMessage(BaseModel):
    """One entry of the ordered history posted to the reply endpoint."""

    role: WireRole = Field(..., description="Role of the speaker (system, user, assistant)")
    content: str = Field(..., description="Message content")


class Turn(BaseModel):
    """A single utterance in the dialogue. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    turn_id: UUID = Field(default_factory=uuid4, description="Unique turn identifier")
    role: TurnRole = Field(..., description="Role of the speaker")
    text: str = Field(..., description="Content of the turn")
    created_at: datetime = Field(default_factory=_now_utc, description="When the turn was created")

    def to_wire(self) -> WireMessage:
        return WireMessage(role=self.role.wire_role, content=self.text)
