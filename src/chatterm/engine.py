"""The foreground interaction loop and its completion workers.

One thread (the one calling :meth:`InteractionLoop.run`) owns the session and
the presentation surface. Each submitted message is completed on a worker
thread that only talks to the LLM; the result comes back as a
:class:`Completion` event on the loop's queue, tagged with the conversation
that was active at dispatch time.
"""

import itertools
import logging
import queue
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Union

from .commands import handle_command
from .errors import ChatError, PersistenceError
from .layout import Layout
from .llm import LLM
from .models import ASSISTANT_ROLE, USER_ROLE, Turn
from .session import ConversationSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Submission:
    text: str


@dataclass(frozen=True)
class Completion:
    request_id: int
    conversation_id: str
    content: str
    failed: bool = False


Event = Union[Submission, Completion]


class InteractionLoop:
    """Accepts submissions, dispatches completions and reconciles their results.

    Submissions are never blocked by outstanding completions; any number of
    requests may be in flight, and their replies are reconciled in the order
    they finish.
    """

    def __init__(
        self,
        session: ConversationSession,
        llm: LLM,
        layout: Layout,
        model: Optional[str] = None,
        max_workers: int = 4,
    ):
        self.session = session
        self.llm = llm
        self.layout = layout
        self.model = model or llm.model
        self.running = False
        self._closing = False
        self._events: "queue.Queue[Event]" = queue.Queue()
        self._pending: Dict[int, str] = {}
        self._request_ids = itertools.count(1)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="chatterm-worker"
        )
        if session.on_persistence_error is None:
            session.on_persistence_error = self.report_persistence_error

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def submit(self, text: str) -> None:
        """Queues user input. Safe to call from any thread."""
        self._events.put(Submission(text))

    def run(self) -> None:
        """Runs until ``/quit``, then finishes outstanding requests."""
        self.open()
        self.layout.start(self.submit)
        try:
            while self.running:
                self.step()
        finally:
            self.shutdown()

    def open(self) -> None:
        """Loads the active conversation and shows it."""
        self.running = True
        try:
            history = self.session.switch_to(self.session.active)
        except PersistenceError as e:
            self.report_persistence_error(e)
            return
        self.render_history(history)
        self.layout.render_notice(
            f"Conversation '{self.session.active}'. Type /help for commands."
        )

    def stop(self) -> None:
        self.running = False

    def step(self, timeout: Optional[float] = None) -> bool:
        """Handles one queued event. Returns False if none arrived in time."""
        try:
            event = self._events.get(timeout=timeout)
        except queue.Empty:
            return False
        self.handle_event(event)
        return True

    def drain(self, timeout: Optional[float] = None) -> None:
        """Handles events until no request is in flight."""
        while self.in_flight:
            if not self.step(timeout):
                logger.warning("Gave up waiting on %d in-flight requests", self.in_flight)
                return

    def handle_event(self, event: Event) -> None:
        if isinstance(event, Completion):
            self._reconcile(event)
        elif not self._closing:
            self._handle_submission(event.text)

    def send(self, text: str) -> int:
        """Records a user turn and dispatches its completion to a worker."""
        self.layout.render_turn(USER_ROLE, text)
        conversation_id = self.session.active
        snapshot = self.session.append_user_turn(text)
        request_id = next(self._request_ids)
        self._pending[request_id] = conversation_id
        logger.info(
            "Dispatching request %d for conversation %s (%d turns)",
            request_id,
            conversation_id,
            len(snapshot),
        )
        self._executor.submit(self._complete, request_id, conversation_id, snapshot)
        return request_id

    def render_history(self, history: Sequence[Turn]) -> None:
        self.layout.clear()
        for turn in history:
            self.layout.render_turn(turn.role, turn.content)

    def report_persistence_error(self, error: PersistenceError) -> None:
        self.layout.render_notice(f"Warning: could not save to history: {error}")

    def shutdown(self, wait: bool = True) -> None:
        """Stops accepting input and reconciles whatever is still running."""
        self._closing = True
        self.running = False
        self.layout.stop()
        self._executor.shutdown(wait=wait)
        if wait:
            self.drain(timeout=0)

    def _handle_submission(self, text: str) -> None:
        text = text.strip()
        if not text:
            return
        if text.startswith("/"):
            handle_command(self, text)
            return
        self.send(text)

    def _complete(self, request_id: int, conversation_id: str, snapshot) -> None:
        # Worker thread: must not touch the session or the layout.
        try:
            turn = self.llm.complete_chat(self.model, snapshot)
            completion = Completion(request_id, conversation_id, turn.content)
        except ChatError as e:
            logger.error("Request %d failed: %s", request_id, e)
            completion = Completion(request_id, conversation_id, f"Error: {e}", True)
        except Exception as e:
            logger.exception("Request %d failed unexpectedly", request_id)
            completion = Completion(request_id, conversation_id, f"Error: {e}", True)
        self._events.put(completion)

    def _reconcile(self, completion: Completion) -> None:
        self._pending.pop(completion.request_id, None)
        turn = self.session.reconcile_assistant_turn(
            completion.conversation_id, completion.content
        )
        if turn is not None:
            self.layout.render_turn(ASSISTANT_ROLE, turn.content)
