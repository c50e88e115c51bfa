"""Fold pending notification emails into the git history, one chain per email."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Optional

from dulwich.repo import Repo

from .config import Settings
from .email_parser import parse_email
from .errors import EmailLocked, GitGovError, UnstorablePath
from .fetcher import DocumentFetcher
from .git_store import CommitChain, open_repository, push_reference
from .ledger import ProcessedLedger
from .mailbox import archive_email, locked_email, scan_pending
from .models import ChangeEvent, PendingEmail, ProcessResult
from .utils import sha256_hex

logger = logging.getLogger(__name__)


class UpdatePipeline:
    """Single writer of commits and the only mover of the reference."""

    def __init__(
        self,
        *,
        repo: Repo,
        ref: str,
        fetcher: DocumentFetcher,
        ledger: ProcessedLedger,
        pending_root: Path,
        archive_root: Path,
        trusted_host: str,
        author: bytes,
        committer: bytes,
        allowed_domains: Iterable[str] = (),
        push_remote: Optional[str] = None,
    ) -> None:
        self.repo = repo
        self.ref = ref
        self.fetcher = fetcher
        self.ledger = ledger
        self.pending_root = pending_root
        self.archive_root = archive_root
        self.trusted_host = trusted_host
        self.author = author
        self.committer = committer
        self.allowed_domains = list(allowed_domains)
        self.push_remote = push_remote

    @classmethod
    def from_settings(cls, settings: Settings) -> "UpdatePipeline":
        fetcher = DocumentFetcher(
            trusted_host=settings.trusted_host,
            extra_hosts=settings.extra_fetch_hosts,
            timeout=settings.fetch_timeout,
            max_depth=settings.crawl_max_depth,
            max_documents=settings.crawl_max_documents,
            user_agent=settings.user_agent,
        )
        return cls(
            repo=open_repository(settings.repo_path, init=settings.init_repo),
            ref=settings.git_ref,
            fetcher=fetcher,
            ledger=ProcessedLedger(settings.ledger_db),
            pending_root=settings.pending_dir,
            archive_root=settings.archive_dir,
            trusted_host=settings.trusted_host,
            author=settings.author_identity,
            committer=settings.committer_identity,
            allowed_domains=settings.sender_allowlist,
            push_remote=settings.push_remote,
        )

    def process_email(self, email: PendingEmail) -> ProcessResult:
        """Parse, fetch and commit one email, then archive it.

        Nothing is published and the file stays pending if any step fails.
        """
        with locked_email(email.path) as handle:
            raw = handle.read()
            checksum = sha256_hex(raw)
            destination = self.archive_root / email.relative_path

            if self.ledger.seen(checksum):
                logger.info("Email %s was already committed, archiving only", email.path)
                archived = archive_email(email, self.archive_root)
                return ProcessResult(
                    email=email,
                    events=[],
                    commit_id=self.ledger.commit_for(checksum),
                    archived_to=archived,
                    already_recorded=True,
                )

            events = parse_email(raw, self.trusted_host)
            logger.info("Email %s carries %s change(s)", email.path, len(events))

            chain = CommitChain(self.repo, self.ref)
            for event in events:
                self._commit_event(chain, event)
            tip = chain.publish(self.committer)
            commit_id = tip.decode("ascii") if tip is not None else None

            try:
                self.ledger.record(
                    checksum=checksum,
                    source_path=email.path,
                    archive_path=destination,
                    commit_id=commit_id,
                    event_count=len(events),
                )
            except sqlite3.Error as exc:
                # the published reference is authoritative, archive regardless
                logger.error("Could not record %s in the ledger: %s", email.path, exc)
            archived = archive_email(email, self.archive_root)

        return ProcessResult(email=email, events=events, commit_id=commit_id, archived_to=archived)

    def _commit_event(self, chain: CommitChain, event: ChangeEvent) -> None:
        builder = chain.builder()
        documents = self.fetcher.fetch(event.url)
        for fetched in documents:
            logger.info("Writing doc to %s", fetched.storage_path)
            try:
                builder.write(fetched.storage_path, fetched.document.payload)
            except ValueError as exc:
                raise UnstorablePath(fetched.storage_path, fetched.url, str(exc)) from exc
        commit = builder.commit(self.author, self.committer, event.commit_message())
        chain.append(commit)
        logger.info(
            "Committed %s for %s (%s document(s))", commit.id.decode(), event.url, len(documents)
        )

    def run_once(self) -> dict[str, int]:
        """Process every pending email once; failures leave the email pending."""
        stats = {"processed": 0, "archived": 0, "commits": 0, "failed": 0, "skipped": 0}

        for email in scan_pending(self.pending_root, self.allowed_domains):
            try:
                result = self.process_email(email)
            except EmailLocked:
                logger.debug("Skipping %s, locked by another process", email.path)
                stats["skipped"] += 1
                continue
            except GitGovError as exc:
                logger.error(
                    "Failed to process %s (%s): %s", email.path, type(exc).__name__, exc
                )
                stats["failed"] += 1
                continue
            except (OSError, sqlite3.Error) as exc:
                logger.error("Storage error while processing %s: %s", email.path, exc)
                stats["failed"] += 1
                continue

            stats["archived"] += 1
            if not result.already_recorded:
                stats["processed"] += 1
                stats["commits"] += len(result.events)

        if stats["commits"] and self.push_remote:
            push_reference(Path(self.repo.path), self.push_remote, self.ref)

        if stats["archived"] or stats["failed"]:
            logger.info(
                "Batch complete: processed=%s archived=%s commits=%s failed=%s skipped=%s",
                stats["processed"],
                stats["archived"],
                stats["commits"],
                stats["failed"],
                stats["skipped"],
            )
        return stats

    def run_forever(self, poll_interval: float, stop_event: threading.Event | None = None) -> None:
        """Poll the pending tree until ``stop_event`` is set."""
        stop_event = stop_event or threading.Event()
        logger.info("Watching %s every %ss", self.pending_root, poll_interval)
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # keep polling, the emails involved stay pending
                logger.exception("Polling pass failed")
            stop_event.wait(poll_interval)
