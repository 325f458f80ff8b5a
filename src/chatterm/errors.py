"""Exception hierarchy shared by the transport client, store and session."""


class ChatError(Exception):
    """Base class for every error raised by chatterm."""


class TransportError(ChatError):
    """The chat server could not be reached or answered with an error."""


class DecodeError(ChatError):
    """A streamed fragment did not match the expected chat response shape."""


class EmptyResponseError(ChatError):
    """The stream completed but the aggregated reply was empty."""


class PersistenceError(ChatError):
    """A store operation failed."""
