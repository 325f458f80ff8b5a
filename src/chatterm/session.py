"""The live conversation: active conversation id plus its in-memory history."""

import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import PersistenceError
from .models import ASSISTANT_ROLE, DEFAULT_CONVERSATION_ID, USER_ROLE, Turn
from .store import Store

logger = logging.getLogger(__name__)

History = Tuple[Turn, ...]


class ConversationSession:
    """Owns the ordered turn history of the active conversation.

    The session mediates between user input, completed replies and the store.
    Every state transition holds ``_lock``, so a reconciliation never observes
    an ``active`` id that does not match ``history``.

    Persistence is best effort: when the store fails, the failure is logged and
    passed to ``on_persistence_error``, and the in-memory append is kept.
    """

    def __init__(
        self,
        store: Store,
        conversation_id: str = DEFAULT_CONVERSATION_ID,
        on_persistence_error: Optional[Callable[[PersistenceError], None]] = None,
    ):
        self.store = store
        self.on_persistence_error = on_persistence_error
        self._active = conversation_id
        self._history: List[Turn] = []
        self._lock = threading.RLock()

    @property
    def active(self) -> str:
        with self._lock:
            return self._active

    def append_user_turn(self, text: str, images: Sequence[str] = ()) -> History:
        """Appends and persists a user turn, then returns a history snapshot.

        The store write is issued before the snapshot is handed out.
        """
        with self._lock:
            turn = Turn(role=USER_ROLE, content=text, images=tuple(images))
            self._history.append(turn)
            self._persist(self._active, USER_ROLE, text)
            return tuple(self._history)

    def reconcile_assistant_turn(
        self, conversation_id: str, text: str
    ) -> Optional[Turn]:
        """Merges a completed reply back into the session.

        Parameters
        ----------
        conversation_id : str
            The conversation that was active when the request was dispatched.
        text : str
            The reply content, or the inline error text of a failed request.

        Returns
        -------
        Turn or None
            The appended turn, or None when the user has since switched to
            another conversation. The reply is persisted under
            ``conversation_id`` in both cases.
        """
        with self._lock:
            self._persist(conversation_id, ASSISTANT_ROLE, text)
            if conversation_id != self._active:
                logger.info(
                    "Reply for %s persisted but not shown; active conversation is %s",
                    conversation_id,
                    self._active,
                )
                return None
            turn = Turn(role=ASSISTANT_ROLE, content=text)
            self._history.append(turn)
            return turn

    def switch_to(self, conversation_id: str) -> History:
        """Makes ``conversation_id`` active, replacing history from the store.

        Raises PersistenceError if the turns cannot be loaded; the session is
        left unchanged in that case.
        """
        with self._lock:
            records = self.store.list_turns(conversation_id)
            self._history = [record.to_turn() for record in records]
            self._active = conversation_id
            logger.info(
                "Loaded conversation %s (%d turns)", conversation_id, len(self._history)
            )
            return tuple(self._history)

    def reload(self) -> History:
        """Re-reads the active conversation from the store."""
        with self._lock:
            return self.switch_to(self._active)

    def snapshot_history(self) -> History:
        with self._lock:
            return tuple(self._history)

    def _persist(self, conversation_id: str, role: str, content: str) -> None:
        try:
            self.store.append(conversation_id, role, content)
        except PersistenceError as e:
            logger.error(
                "Failed to persist %s turn for conversation %s: %s",
                role,
                conversation_id,
                e,
            )
            if self.on_persistence_error is not None:
                self.on_persistence_error(e)
