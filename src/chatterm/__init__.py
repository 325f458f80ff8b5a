"""
The main entrypoint for the chatterm package.

This module contains the Chatterm class, which wires the pillars together: an
LLM provider, a store, the conversation session, a layout and the interaction
loop that drives them.
"""

from typing import Optional

from . import layout, llm, store
from .config import Settings
from .engine import InteractionLoop
from .session import ConversationSession

__all__ = ["Chatterm", "Settings"]


class Chatterm:
    """A terminal chat client backed by a local model server.

    Every pillar can be injected; omitted ones are built from ``settings``.
    """

    def __init__(
        self,
        llm: Optional[llm.LLM] = None,
        store: Optional[store.Store] = None,
        layout: Optional[layout.Layout] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize the application with configurable pillars.

        Parameters
        ----------
        llm : llm.LLM, optional
            Provider that completes chats. Defaults to llm.Ollama().
        store : store.Store, optional
            Persistence gateway for turns. Defaults to store.SQLite() at
            ``settings.db_path``.
        layout : layout.Layout, optional
            Presentation surface. Defaults to layout.Terminal().
        settings : Settings, optional
            Defaults to Settings.from_env().

        Examples
        --------
        >>> app = Chatterm(llm=llm.Echo(), store=store.InMemory())
        >>> app.run()  # doctest: +SKIP
        """
        llm_module = globals()["llm"]
        store_module = globals()["store"]
        layout_module = globals()["layout"]

        self.settings = settings if settings is not None else Settings.from_env()
        self.llm = (
            llm
            if llm is not None
            else llm_module.Ollama(
                default_model=self.settings.model,
                host=self.settings.host,
                max_tokens=self.settings.max_tokens,
                timeout=self.settings.timeout,
            )
        )
        self.store = (
            store if store is not None else store_module.SQLite(self.settings.db_path)
        )
        self.layout = (
            layout
            if layout is not None
            else layout_module.Terminal(assistant_label=self.llm.model)
        )
        self.session = ConversationSession(self.store)
        self.loop = InteractionLoop(
            self.session,
            self.llm,
            self.layout,
            model=self.llm.model,
            max_workers=self.settings.max_workers,
        )

    def run(self) -> None:
        """Runs the interaction loop until the user quits."""
        try:
            self.loop.run()
        finally:
            self.store.close()
