"""Error taxonomy for the chat backend.

Request-level errors (``InvalidRequest``) are raised before any streaming
starts. Tool-level errors never escape the tool layer: they are turned into
``{"success": False, ...}`` results the model can read and recover from.
"""

from __future__ import annotations


class YieldChatError(Exception):
    """Base class for all backend errors."""


class InvalidRequest(YieldChatError):
    """Malformed inbound payload (rejected with HTTP 400)."""


class ToolInputInvalid(YieldChatError):
    """Tool arguments failed schema validation or named an unknown tool."""


class ToolDomainError(YieldChatError):
    """A tool rejected well-formed arguments for a domain reason."""


class NotFound(ToolDomainError):
    pass


class InvalidAmount(ToolDomainError):
    pass


class UnsupportedToken(ToolDomainError):
    pass


class UpstreamFailure(YieldChatError):
    """The model provider failed; aborts the live stream."""


class ProtocolError(RuntimeError):
    """A stream writer was driven out of order (programming error)."""
