"""Error taxonomy for the issue-feed layer.

Every error the stores, provider and controllers raise derives from
``CivicWatchError`` and carries a stable ``code`` that the CLI puts in its
JSON error envelope.  Input validation failures stay plain ``ValueError``.

Only ``DuplicateConflict`` and ``UploadFailure`` are recovered locally:
the former is caught inside the stores and resolved to the existing record
or a no-op vote, the latter travels in ``CreatedIssue.warnings``.
"""

from __future__ import annotations


class CivicWatchError(Exception):
    """Base class for civicwatch errors."""

    code = "error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class ConfigurationError(CivicWatchError):
    """The configured backend cannot be constructed."""

    code = "configuration_error"


class AuthenticationRequiredError(CivicWatchError):
    """A mutation was attempted without an active identity."""

    code = "authentication_required"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Sign-in required to {operation}")


class AuthorizationError(CivicWatchError):
    """The caller is signed in but lacks the authority role."""

    code = "not_authorized"

    def __init__(self, operation: str, identity_id: str | None = None) -> None:
        self.operation = operation
        self.identity_id = identity_id
        who = f"'{identity_id}'" if identity_id else "caller"
        super().__init__(f"Authority role required to {operation} ({who} is not an authority)")


class NotFoundError(CivicWatchError, KeyError):
    """An operation referenced an issue id that does not exist."""

    code = "not_found"

    def __init__(self, issue_id: str) -> None:
        self.issue_id = issue_id
        super().__init__(f"Issue not found: {issue_id}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.message


class DuplicateConflict(CivicWatchError):
    """A uniqueness constraint fired on ``client_nonce`` or (issue, voter)."""

    code = "duplicate"

    def __init__(self, constraint: str, key: str) -> None:
        self.constraint = constraint
        self.key = key
        super().__init__(f"Duplicate {constraint}: {key}")


class UploadFailure(CivicWatchError):
    """The image could not be stored; the issue is created without it."""

    code = "upload_failed"

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"Image upload failed for {filename!r}: {reason}")


class TransientNetworkError(CivicWatchError):
    """Any other backend failure, surfaced for a manual retry."""

    code = "backend_error"


class SubmissionInProgressError(CivicWatchError):
    """A submit was attempted while another is still in flight."""

    code = "submission_in_progress"

    def __init__(self) -> None:
        super().__init__("A submission is already in progress")


class UnsupportedOperationError(CivicWatchError):
    """The selected backend does not offer this operation."""

    code = "unsupported"

    def __init__(self, operation: str, backend: str) -> None:
        self.operation = operation
        self.backend = backend
        super().__init__(f"{operation} is not available for the {backend} store")
