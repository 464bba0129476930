# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

"""Exceptions raised by the RCON client."""

import enum


class RCONError(Exception):
    """Base exception for all RCON-related errors."""


class TransportError(RCONError):
    """Used for propagating socket-related errors.

    Raised when the underlying stream is closed by the peer or any other
    I/O error occurs. The original exception, if any, is available as
    ``__cause__``.
    """


class RCONTimeoutError(TransportError):
    """Raised when a timeout occurs waiting for a response."""


class MessageError(RCONError):
    """Raised for errors encoding or decoding RCON packets."""


class EncodingError(MessageError):
    """Raised when a packet cannot be represented on the wire."""


class DecodingError(MessageError):
    """Raised when bytes received don't form a valid packet."""


class ProtocolViolation(enum.Enum):
    """Kinds of :exc:`ProtocolError`."""

    OVERSIZED_PACKET = "oversized packet"
    UNEXPECTED_PACKET = "unexpected packet"


class ProtocolError(RCONError):
    """Raised when the peer violates the protocol.

    :ivar ProtocolViolation kind: what went wrong.
    """

    def __init__(self, kind, detail=None):
        message = kind.value
        if detail:
            message = "{}: {}".format(message, detail)
        super().__init__(message)
        self.kind = kind


class AuthenticationError(RCONError):
    """Raised for failed authentication."""

    def __init__(self, message="Wrong password"):
        super().__init__(message)


class NotAuthenticatedError(RCONError):
    """Raised when issuing commands on a session that isn't authenticated."""
