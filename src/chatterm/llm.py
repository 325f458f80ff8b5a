"""Concrete implementations for LLM providers."""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Sequence

import httpx
import ollama
from pydantic import ValidationError

from .errors import DecodeError, EmptyResponseError, TransportError
from .models import ASSISTANT_ROLE, USER_ROLE, Turn

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 256
DEFAULT_TIMEOUT = 30.0


class LLM(ABC):
    """Abstract Base Class for all LLM providers."""

    model: str

    @abstractmethod
    def complete_chat(self, model: Optional[str], history: Sequence[Turn]) -> Turn:
        """Sends the whole history to the provider and returns its reply.

        Parameters
        ----------
        model : str, optional
            The model to use. Falls back to the provider's default model.
        history : Sequence[Turn]
            The ordered turns of the conversation, sent verbatim.

        Returns
        -------
        Turn
            A fully materialized assistant turn.

        Raises
        ------
        TransportError
            The server could not be reached or reported an error.
        DecodeError
            A streamed fragment could not be decoded.
        EmptyResponseError
            The stream finished without producing any content.
        """
        pass


def aggregate_fragments(fragments: Iterable[Any]) -> str:
    """Concatenates streamed fragment contents in arrival order.

    Accumulation stops at the first fragment flagged ``done`` or when the
    stream runs out, whichever comes first. A stream that ends without a
    ``done`` fragment is not an error.
    """
    parts = []
    for fragment in fragments:
        content = fragment.message.content
        if content:
            parts.append(content)
        if fragment.done:
            break
    return "".join(parts)


class Ollama(LLM):
    """Streams chat completions from a local Ollama server."""

    def __init__(
        self,
        default_model: str = "llama3.2",
        host: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[ollama.Client] = None,
    ):
        self.client = client or ollama.Client(host=host, timeout=timeout)
        self.model = default_model
        self.max_tokens = max_tokens
        logger.info("Ollama client initialized (host=%s)", host or "default")

    def build_request(self, model: Optional[str], history: Sequence[Turn]) -> dict:
        return {
            "model": model or self.model,
            "messages": [turn.to_message() for turn in history],
            "options": {"num_predict": self.max_tokens},
            "stream": True,
        }

    def complete_chat(self, model: Optional[str], history: Sequence[Turn]) -> Turn:
        request = self.build_request(model, history)
        logger.debug("Sending chat request: %s", json.dumps(request, indent=2))

        try:
            fragments = self.client.chat(**request)
            content = aggregate_fragments(fragments)
        except ollama.ResponseError as e:
            logger.error("Chat server returned an error: %s", e)
            raise TransportError(f"server error: {e}") from e
        except (httpx.TransportError, ConnectionError) as e:
            logger.error("Chat request failed: %s", e)
            raise TransportError(f"chat request failed: {e}") from e
        except (json.JSONDecodeError, ValidationError, AttributeError, TypeError) as e:
            # Non-object records (lists, numbers, null) fail inside the
            # client before reaching the response model.
            logger.error("Error decoding chat streaming response: %s", e)
            raise DecodeError(f"malformed stream fragment: {e}") from e

        if not content:
            logger.warning("Received empty chat response for model %s", request["model"])
            raise EmptyResponseError("received empty chat response")

        logger.info("Aggregated chat response (%d chars)", len(content))
        return Turn(role=ASSISTANT_ROLE, content=content)


class Echo(LLM):
    def __init__(self, default_model: str = "echo-v1", delay: float = 0.8):
        self.model = default_model
        self.delay = delay

    def complete_chat(self, model: Optional[str], history: Sequence[Turn]) -> Turn:
        if self.delay:
            time.sleep(self.delay)
        user_prompt = next(
            (turn.content for turn in reversed(history) if turn.role == USER_ROLE),
            "No message provided",
        )
        return Turn(role=ASSISTANT_ROLE, content=f"Echo: {user_prompt}")
