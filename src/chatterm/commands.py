"""Slash commands typed into the input line.

Each handler receives the interaction loop and the raw argument string, and
runs on the loop's foreground thread.
"""

import logging

from .errors import PersistenceError

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /list            list conversations
  /switch <id>     switch to (or start) a conversation
  /messages        list stored messages of this conversation with their ids
  /delete <id>     delete a stored message
  /edit <id>       edit a stored message (not supported)
  /help            show this help
  /quit            wait for pending replies and exit"""


def list_conversations(loop, argument: str) -> None:
    active = loop.session.active
    convo_ids = loop.session.store.list_conversation_ids() | {active}
    for convo_id in sorted(convo_ids):
        marker = "*" if convo_id == active else " "
        loop.layout.render_notice(f"{marker} {convo_id}")


def switch_conversation(loop, argument: str) -> None:
    if not argument:
        loop.layout.render_notice("Usage: /switch <conversation id>")
        return
    history = loop.session.switch_to(argument)
    loop.render_history(history)
    loop.layout.render_notice(f"Switched to conversation '{argument}'.")


def show_messages(loop, argument: str) -> None:
    active = loop.session.active
    records = loop.session.store.list_turns(active)
    if not records:
        loop.layout.render_notice(f"No stored messages in '{active}'.")
        return
    for record in records:
        loop.layout.render_notice(f"{record.id} [{record.role}] {record.content}")


def _parse_record_id(loop, argument: str, usage: str):
    try:
        return int(argument)
    except ValueError:
        loop.layout.render_notice(usage)
        return None


def delete_message(loop, argument: str) -> None:
    record_id = _parse_record_id(loop, argument, "Usage: /delete <message id>")
    if record_id is None:
        return
    if not loop.session.store.delete(record_id):
        loop.layout.render_notice(f"No message with id {record_id}.")
        return
    loop.render_history(loop.session.reload())
    loop.layout.render_notice(f"Deleted message {record_id}.")


def edit_message(loop, argument: str) -> None:
    record_id = _parse_record_id(loop, argument, "Usage: /edit <message id>")
    if record_id is None:
        return
    logger.info("Edit requested for message id %d", record_id)
    loop.layout.render_notice("Editing messages is not supported.")


def show_help(loop, argument: str) -> None:
    loop.layout.render_notice(HELP_TEXT)


def quit_loop(loop, argument: str) -> None:
    if loop.in_flight:
        loop.layout.render_notice(f"Waiting for {loop.in_flight} pending replies...")
    loop.stop()


COMMANDS = {
    "list": list_conversations,
    "switch": switch_conversation,
    "messages": show_messages,
    "delete": delete_message,
    "edit": edit_message,
    "help": show_help,
    "quit": quit_loop,
}


def handle_command(loop, text: str) -> None:
    name, _, argument = text[1:].partition(" ")
    handler = COMMANDS.get(name.lower())
    if handler is None:
        loop.layout.render_notice(f"Unknown command /{name}. Type /help for commands.")
        return
    try:
        handler(loop, argument.strip())
    except PersistenceError as e:
        logger.error("Command /%s failed: %s", name, e)
        loop.layout.render_notice(f"/{name} failed: {e}")
