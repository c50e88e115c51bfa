"""Pending and archived email trees written by the mail receiver.

Layout on both sides::

    <root>/<domain>/<to-addresses>/<timestamp>.eml
"""

from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from .errors import EmailLocked
from .models import PendingEmail

logger = logging.getLogger(__name__)

EMAIL_SUFFIX = ".eml"


def scan_pending(pending_root: Path, allowed_domains: Iterable[str] = ()) -> Iterator[PendingEmail]:
    """Yield pending emails oldest first, restricted to allow-listed domains.

    An empty allow-list accepts every domain directory.
    """
    if not pending_root.is_dir():
        logger.warning("Pending directory does not exist: %s", pending_root)
        return

    allowed = {domain.lower() for domain in allowed_domains}
    for domain_dir in sorted(pending_root.iterdir()):
        if not domain_dir.is_dir():
            continue
        if allowed and domain_dir.name.lower() not in allowed:
            logger.debug("Ignoring mail from non allow-listed domain %s", domain_dir.name)
            continue
        for recipients_dir in sorted(domain_dir.iterdir()):
            if not recipients_dir.is_dir():
                continue
            for path in sorted(recipients_dir.iterdir()):
                if path.name.startswith(".") or path.suffix != EMAIL_SUFFIX:
                    continue
                if not path.is_file():
                    continue
                yield PendingEmail(path=path, domain=domain_dir.name, recipients=recipients_dir.name)


@contextmanager
def locked_email(path: Path) -> Iterator[BinaryIO]:
    """Open ``path`` holding an exclusive advisory lock for the duration."""
    handle = open(path, "rb")
    try:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise EmailLocked(path) from None
        try:
            yield handle
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        handle.close()


def archive_email(email: PendingEmail, archive_root: Path) -> Path:
    """Move ``email`` unmodified into the archive tree; the rename is atomic."""
    destination = archive_root / email.relative_path
    destination.parent.mkdir(parents=True, exist_ok=True)
    os.replace(email.path, destination)
    logger.info("Archived %s to %s", email.path, destination)
    return destination
