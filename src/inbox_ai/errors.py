from __future__ import annotations


class InboxError(Exception):
    """Base class for errors raised by the inbox assistant."""


class Unauthorized(InboxError):
    """Signature or shared secret did not match."""


class ValidationError(InboxError):
    """A request is missing a required field or carries an invalid one."""


class NotFound(InboxError):
    """A referenced log entry or record does not exist."""


class ExternalCallFailure(InboxError):
    """The classifier, the record store or the chat platform failed."""

    def __init__(self, service: str, detail: str):
        super().__init__(f"{service} call failed: {detail}")
        self.service = service
        self.detail = detail
