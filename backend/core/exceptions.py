# backend/core/exceptions.py


class ChatError(Exception):
    """Base class for errors raised by the realtime chat core."""


class InvalidMessage(ChatError):
    """A publish request is missing its room id or body, or is malformed."""


class UnknownConnection(ChatError):
    """An operation referenced a connection id that is not registered."""


class DuplicateConnection(ChatError):
    """The transport reused a connection id that is still registered."""


class TransportFailure(ChatError):
    """The underlying socket could not be opened or was dropped."""


class AuthenticationError(ChatError):
    """The handshake did not carry a usable identity."""
