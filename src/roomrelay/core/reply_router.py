"""Maps operator replies back to the session they answer."""

from __future__ import annotations

import logging

from roomrelay.models.actions import (
    Approve,
    Away,
    Close,
    NeedsExplicitReply,
    Nudge,
    OperatorAction,
    Reject,
    Reply,
    Resolution,
    SleepClear,
    SleepSet,
    SleepStatus,
    Status,
)
from roomrelay.models.context import ReplyContext, correlation_key
from roomrelay.models.delivery import OperatorUpdate
from roomrelay.models.enums import ContextKind

logger = logging.getLogger("roomrelay.router")

_KEYWORDS: dict[str, OperatorAction] = {
    "approve": Approve(),
    "reject": Reject(),
    "away": Away(),
    "nudge": Nudge(),
    "close": Close(),
    "kick": Close(),
    "xxclosexx": Close(),
    "status": Status(),
    "sleep clear": SleepClear(),
    "sleep status": SleepStatus(),
}


def interpret(text: str, kind: ContextKind = ContextKind.MESSAGE) -> OperatorAction:
    """Read an operator reply against the command vocabulary.

    Matching is case-insensitive on the trimmed text. ``sleep <minutes>``
    needs a positive integer; anything that is not a command is relayed
    verbatim as a ``Reply``. *kind* is accepted so callers can pass the
    context along; both context kinds share one vocabulary.
    """
    command = " ".join(text.strip().lower().split())
    action = _KEYWORDS.get(command)
    if action is not None:
        return action
    if command.startswith("sleep "):
        argument = command[len("sleep ") :]
        if argument.isdigit() and int(argument) > 0:
            return SleepSet(minutes=int(argument))
    return Reply(text=text)


class ReplyContextRouter:
    """Two correlation tables: knocks awaiting a decision and live chats.

    Contexts hold session ids and tokens, never session objects, so a
    lingering context cannot keep a finished session alive.
    """

    def __init__(self) -> None:
        self._knocks: dict[str, ReplyContext] = {}
        self._messages: dict[str, ReplyContext] = {}

    def set_context(self, context: ReplyContext) -> None:
        table = self._knocks if context.kind is ContextKind.KNOCK else self._messages
        for key, existing in list(table.items()):
            if existing.session_id == context.session_id:
                del table[key]
        table[context.correlation_id] = context
        logger.debug(
            "%s context set for room %s",
            context.kind.value,
            context.session_id,
            extra={"correlation_id": context.correlation_id},
        )

    def clear_context(self, session_id: int | str | None = None) -> None:
        if session_id is None:
            self._knocks.clear()
            self._messages.clear()
            return
        for table in (self._knocks, self._messages):
            for key, existing in list(table.items()):
                if existing.session_id == session_id:
                    del table[key]

    def contexts_for(self, session_id: int | str) -> list[ReplyContext]:
        found = [c for c in self._knocks.values() if c.session_id == session_id]
        found.extend(c for c in self._messages.values() if c.session_id == session_id)
        return found

    def lookup(self, correlation_id: str) -> ReplyContext | None:
        return self._knocks.get(correlation_id) or self._messages.get(correlation_id)

    def resolve(
        self, update: OperatorUpdate, session_hint: int | str | None = None
    ) -> Resolution:
        """Work out which session *update* answers and what it asks for.

        An explicit reply reference wins (knock table first). Without one,
        an update that arrived on a session's dedicated bot endpoint
        (*session_hint*) goes to that session's most recent context.
        Anything else is never guessed at.
        """
        if update.reply_to_message_id is not None:
            key = correlation_key(update.credential_id, update.reply_to_message_id)
            context = self.lookup(key)
            if context is not None:
                return Resolution(action=interpret(update.text, context.kind), context=context)
            logger.info(
                "Reply to unknown notification %s",
                update.reply_to_message_id,
                extra={"credential_id": update.credential_id},
            )

        if session_hint is not None:
            candidates = self.contexts_for(session_hint)
            if candidates:
                context = candidates[-1]
                return Resolution(action=interpret(update.text, context.kind), context=context)

        return Resolution(action=NeedsExplicitReply())

    @property
    def size(self) -> int:
        return len(self._knocks) + len(self._messages)
