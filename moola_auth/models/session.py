"""
Session Models

The session is a discriminated value: the device user is either
unauthenticated, authenticated as the stored user, or locked out until
a deadline. Observers receive a GateSnapshot on every state change.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from moola_auth.models.user import UserRecord


class Unauthenticated(BaseModel):
    """No one is signed in."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["unauthenticated"] = "unauthenticated"


class Authenticated(BaseModel):
    """
    The stored user has entered the correct PIN.

    Two authenticated sessions are equal when they are for the same email,
    whatever else differs in the user record.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["authenticated"] = "authenticated"
    user: UserRecord

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Authenticated):
            return self.user.email == other.user.email
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.kind, self.user.email))


class Locked(BaseModel):
    """Authentication is refused until `until`."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["locked"] = "locked"
    until: datetime


Session = Annotated[
    Union[Unauthenticated, Authenticated, Locked],
    Field(discriminator="kind"),
]


class GateSnapshot(BaseModel):
    """Read-only view of the gate handed to observers."""
    model_config = ConfigDict(frozen=True)

    session: Session
    failed_attempts: int = Field(ge=0)
    lockout_until: Optional[datetime] = None
    remaining_attempts: int = Field(ge=0)

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self.session, Authenticated)

    @property
    def is_locked(self) -> bool:
        return isinstance(self.session, Locked)


# =============================================================================
# LOGIN RESULT
# =============================================================================

class LoginStatus(str, Enum):
    """Outcome of a PIN submission on the login screen."""
    SUCCESS = "success"
    FAILURE = "failure"
    LOCKED = "locked"


class LoginResult(BaseModel):
    """
    What the login screen renders after a PIN submission.

    `seconds_remaining` is set only for LOCKED, `remaining_attempts` only
    for a wrong PIN, `user` only for SUCCESS.
    """
    model_config = ConfigDict(frozen=True)

    status: LoginStatus
    message: str = ""
    seconds_remaining: Optional[int] = Field(default=None, ge=0)
    remaining_attempts: Optional[int] = Field(default=None, ge=0)
    user: Optional[UserRecord] = None

    @property
    def succeeded(self) -> bool:
        return self.status == LoginStatus.SUCCESS
