"""
chatterm CLI: start an interactive chat session.

Registered as the `chatterm` console script via pyproject.toml.
"""

import logging

import click

from . import Chatterm
from .config import Settings
from .errors import PersistenceError
from .llm import Echo

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_file: str, log_level: str) -> None:
    """Send all log records to ``log_file`` so they never mix with the chat."""
    logging.basicConfig(
        filename=log_file,
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


@click.command()
@click.option("--model", default=None, help="Model name to chat with.")
@click.option("--host", default=None, help="Model server URL (default: $OLLAMA_HOST).")
@click.option("--db", "db_path", default=None, help="SQLite history file.")
@click.option("--max-tokens", type=int, default=None, help="Token limit per reply.")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds.")
@click.option("--log-file", default=None, help="Where to write logs.")
@click.option("--log-level", default=None, help="Logging level, e.g. DEBUG.")
@click.option("--echo", is_flag=True, help="Use the offline echo model.")
def main(model, host, db_path, max_tokens, timeout, log_file, log_level, echo):
    """Chat with a local model; history is kept per conversation."""
    overrides = {
        "model": model,
        "host": host,
        "db_path": db_path,
        "max_tokens": max_tokens,
        "timeout": timeout,
        "log_file": log_file,
        "log_level": log_level,
    }
    settings = Settings.from_env().model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    configure_logging(settings.log_file, settings.log_level)
    logger.info("Application started (model=%s)", settings.model)

    try:
        app = Chatterm(llm=Echo() if echo else None, settings=settings)
    except PersistenceError as e:
        click.secho(f"Error: could not open history: {e}", fg="red", err=True)
        raise SystemExit(1)
    app.run()
    logger.info("Application stopped")


if __name__ == "__main__":
    main()
