"""Error taxonomy for the update-tracking pipeline."""

from __future__ import annotations


class GitGovError(Exception):
    """Base class for failures that abort processing of a single email."""


class MalformedEmail(GitGovError):
    """An expected element of a notification email is missing or undecodable."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class UnknownEmailFormat(GitGovError):
    """The email heading matches none of the known templates."""

    def __init__(self, heading: str) -> None:
        super().__init__(f"Unrecognised email template heading: {heading!r}")
        self.heading = heading


class UntrustedSource(GitGovError):
    """A change event points outside the trusted host."""

    def __init__(self, url: str, trusted_host: str) -> None:
        super().__init__(f"URL {url} is not on trusted host {trusted_host}")
        self.url = url
        self.trusted_host = trusted_host


class ContentShapeError(GitGovError):
    """A fetched HTML page has no main content region."""

    def __init__(self, url: str | None, message: str = "No <main> element found") -> None:
        super().__init__(f"{message} (url={url})")
        self.url = url


class RenderError(GitGovError):
    """Canonicalization could not rewrite the markup."""


class PathCollision(GitGovError):
    """A tree entry and a blob entry clash on the same name."""

    TREE_BLOCKED_BY_BLOB = "tree_blocked_by_blob"
    BLOB_BLOCKED_BY_TREE = "blob_blocked_by_tree"

    def __init__(self, path: str, kind: str) -> None:
        if kind == self.TREE_BLOCKED_BY_BLOB:
            message = f"File blocking tree creation at {path}"
        else:
            message = f"Tree blocking file creation at {path}"
        super().__init__(message)
        self.path = path
        self.kind = kind


class UseAfterCommit(GitGovError):
    """A commit builder was used after it produced its commit."""


class RepositoryError(GitGovError):
    """The underlying git storage could not be read or written."""


class NetworkError(GitGovError):
    """Retrieving a document failed at the transport or HTTP level."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{message} (url={url})")
        self.url = url
        self.status_code = status_code


class EmailLocked(GitGovError):
    """Another process holds the advisory lock on an email file."""

    def __init__(self, path) -> None:
        super().__init__(f"Email file is locked by another process: {path}")
        self.path = path


class UnstorablePath(GitGovError):
    """A fetched document maps onto a path that can't exist in a git tree."""

    def __init__(self, path: str, url: str, reason: str) -> None:
        super().__init__(f"Cannot store {url} at {path!r}: {reason}")
        self.path = path
        self.url = url
