"""Operator actions produced by the reply-context router."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from roomrelay.models.context import ReplyContext


class Approve(BaseModel):
    kind: Literal["approve"] = "approve"


class Reject(BaseModel):
    kind: Literal["reject"] = "reject"


class Away(BaseModel):
    kind: Literal["away"] = "away"


class Nudge(BaseModel):
    kind: Literal["nudge"] = "nudge"


class Close(BaseModel):
    kind: Literal["close"] = "close"


class Reply(BaseModel):
    """Free-form operator text, relayed verbatim."""

    kind: Literal["reply"] = "reply"
    text: str


class SleepSet(BaseModel):
    kind: Literal["sleep_set"] = "sleep_set"
    minutes: int = Field(gt=0)


class SleepClear(BaseModel):
    kind: Literal["sleep_clear"] = "sleep_clear"


class SleepStatus(BaseModel):
    kind: Literal["sleep_status"] = "sleep_status"


class Status(BaseModel):
    kind: Literal["status"] = "status"


class NeedsExplicitReply(BaseModel):
    """The update could not be tied to a notification."""

    kind: Literal["needs_explicit_reply"] = "needs_explicit_reply"


OperatorAction = Annotated[
    Approve
    | Reject
    | Away
    | Nudge
    | Close
    | Reply
    | SleepSet
    | SleepClear
    | SleepStatus
    | Status
    | NeedsExplicitReply,
    Field(discriminator="kind"),
]


class Resolution(BaseModel):
    """A router decision: the action plus the context it applies to."""

    action: OperatorAction
    context: ReplyContext | None = None
