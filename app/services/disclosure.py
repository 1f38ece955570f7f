"""One-time disclosure of freshly created API keys.

Each session context owns exactly one slot. The slot holds the plaintext of the most
recently created key until it is dismissed or replaced by the next create; once gone,
nothing in the process can produce that plaintext again.
"""

import enum
import functools
import time

import structlog

from app.core.exceptions import SecretUnavailableError

logger = structlog.get_logger()


class DisclosureState(str, enum.Enum):
    HIDDEN = "hidden"
    REVEALED = "revealed"


class DisclosureSlot:
    """Single-slot holder for the plaintext of the last key created in a session."""

    def __init__(self, on_hold=None) -> None:
        self._key_id: str | None = None
        self._raw_key: str | None = None
        self._state = DisclosureState.HIDDEN
        self._on_hold = on_hold
        self.expires_at: float | None = None

    @property
    def state(self) -> DisclosureState:
        return self._state

    @property
    def current_key_id(self) -> str | None:
        return self._key_id

    def is_current(self, key_id: str) -> bool:
        return self._raw_key is not None and self._key_id == key_id

    def is_revealed(self, key_id: str) -> bool:
        return self.is_current(key_id) and self._state is DisclosureState.REVEALED

    def hold(self, key_id: str, raw_key: str) -> None:
        """Take ownership of a new plaintext, replacing whatever was held before."""
        if self._key_id is not None and self._key_id != key_id:
            logger.debug("disclosure_replaced", previous_key_id=self._key_id, key_id=key_id)
        self._key_id = key_id
        self._raw_key = raw_key
        self._state = DisclosureState.HIDDEN
        if self._on_hold is not None:
            self._on_hold(self)

    def reveal(self, key_id: str) -> str:
        if not self.is_current(key_id):
            raise SecretUnavailableError(details={"key_id": key_id})
        self._state = DisclosureState.REVEALED
        return self._raw_key

    def dismiss(self) -> None:
        """Drop the held plaintext; past this point it is unrecoverable."""
        self._key_id = None
        self._raw_key = None
        self._state = DisclosureState.HIDDEN


class DisclosureRegistry:
    """Process-local map of session context → DisclosureSlot.

    Only slots that still hold a plaintext are kept. A slot is dropped when it is
    dismissed, when its key is deleted, or once the session's identity token expires.
    The map is capped at ``max_slots``; the oldest sessions are evicted first.
    """

    def __init__(self, max_slots: int = 10_000, clock=time.time) -> None:
        self._slots: dict[tuple[str, str], DisclosureSlot] = {}
        self._max_slots = max_slots
        self._clock = clock

    def slot_for(self, owner_id: str, session_id: str, expires_at: float | None = None) -> DisclosureSlot:
        """The session's slot. ``expires_at`` is the identity token's ``exp``.

        An empty slot is not stored until something is held in it.
        """
        self.prune()
        key = (owner_id, session_id)
        slot = self._slots.get(key)
        if slot is None:
            slot = DisclosureSlot(on_hold=functools.partial(self._attach, key))
        if expires_at is not None:
            slot.expires_at = max(expires_at, slot.expires_at or expires_at)
        return slot

    def dismiss(self, owner_id: str, session_id: str) -> None:
        """End the session's disclosure window and forget the slot."""
        slot = self._slots.pop((owner_id, session_id), None)
        if slot is not None:
            slot.dismiss()

    def discard(self, owner_id: str, key_id: str) -> None:
        """Drop any of the owner's slots still holding a key that no longer exists."""
        for key, slot in list(self._slots.items()):
            if key[0] == owner_id and slot.current_key_id == key_id:
                self.dismiss(*key)

    def prune(self) -> None:
        """Forget slots that hold nothing, and dismiss those whose token has expired."""
        now = self._clock()
        for key, slot in list(self._slots.items()):
            if slot.expires_at is not None and slot.expires_at <= now:
                logger.debug("disclosure_expired", owner_id=key[0], key_id=slot.current_key_id)
                self.dismiss(*key)
            elif slot.current_key_id is None:
                del self._slots[key]

    def _attach(self, key: tuple[str, str], slot: DisclosureSlot) -> None:
        # Newest hold wins if another slot was created for the same session meanwhile.
        self._slots.pop(key, None)
        self._slots[key] = slot
        while len(self._slots) > self._max_slots:
            oldest = next(iter(self._slots))
            logger.warning("disclosure_evicted", owner_id=oldest[0])
            self.dismiss(*oldest)

    def __len__(self) -> int:
        self.prune()
        return len(self._slots)
