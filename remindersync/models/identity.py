"""Record identity: pending (client-generated) or confirmed (server-assigned)."""

from typing import Annotated, Literal, Union
from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID


class PendingId(BaseModel):
    """Identifier of a record the remote store has not accepted yet."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["pending"] = "pending"
    token: str = Field(..., min_length=1, description="Client-generated ULID token")

    @property
    def is_pending(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"pending:{self.token}"


class ConfirmedId(BaseModel):
    """Identifier assigned by the remote store."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["confirmed"] = "confirmed"
    value: str = Field(..., min_length=1, description="Remote primary key")

    @property
    def is_pending(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.value


RecordId = Annotated[Union[PendingId, ConfirmedId], Field(discriminator="kind")]


def new_pending_id() -> PendingId:
    """Generate a fresh pending identifier (ULID, sortable by creation time)."""
    return PendingId(token=str(ULID()))


def confirmed(value) -> ConfirmedId:
    """Wrap a remote primary key (int, uuid or text) as a confirmed identifier."""
    return ConfirmedId(value=str(value))
