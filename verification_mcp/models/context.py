from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ActorType(str, Enum):
    AGENT = "agent"
    USER = "user"
    SYSTEM = "system"


class RequestContext(BaseModel):
    """
    Per-call authorization context produced by the auth gate.

    Handlers read it to decide masking; the audit logger copies it into every
    audit entry. It is frozen so nothing downstream can widen what a caller
    was granted.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(description="Caller-supplied correlation UUID.")
    actor_id: str = Field(description="Identifier of the agent, user or system acting.")
    actor_type: ActorType
    purpose: str = Field(description="Declared purpose of use.")
    allow_unmasked: bool = Field(
        default=False,
        description="Whether member/group identifiers may be returned unmasked.",
    )
