"""Configuration management for the update-tracking pipeline."""

from __future__ import annotations

import re
from email.utils import parseaddr
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()


def _split_list(value: str | Sequence[str] | None, coerce_lower: bool = True) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,]", value)
    else:
        items = list(value)
    cleaned: list[str] = []
    for item in items:
        trimmed = item.strip()
        if not trimmed:
            continue
        cleaned.append(trimmed.lower() if coerce_lower else trimmed)
    return cleaned


def _identity(value: str) -> tuple[str, str]:
    name, address = parseaddr(value)
    if not address:
        raise ValueError(f"Expected 'Name <email>' identity, got {value!r}")
    return name or address, address


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    repo_path: Path = Field(..., alias="REPO_PATH")
    git_ref: str = Field("refs/heads/main", alias="GIT_REF")
    init_repo: bool = Field(True, alias="INIT_REPO")
    push_remote: str | None = Field(None, alias="PUSH_REMOTE")

    trusted_host: str = Field("www.gov.uk", alias="TRUSTED_HOST")
    extra_fetch_hosts_raw: str = Field("", alias="EXTRA_FETCH_HOSTS")
    sender_allowlist_raw: str = Field("gov.uk", alias="SENDER_ALLOWLIST")

    pending_dir: Path = Field(Path("mail/pending"), alias="PENDING_DIR")
    archive_dir: Path = Field(Path("mail/archived"), alias="ARCHIVE_DIR")
    ledger_db: Path = Field(Path("data/processed_emails.db"), alias="LEDGER_DB")

    commit_author: str = Field("GOV.UK <info@gov.uk>", alias="COMMIT_AUTHOR")
    committer: str = Field("gitgov <gitgov@localhost>", alias="COMMITTER")

    fetch_timeout: float = Field(30.0, alias="FETCH_TIMEOUT")
    user_agent: str = Field("gitgov/0.1", alias="USER_AGENT")
    crawl_max_depth: int = Field(3, alias="CRAWL_MAX_DEPTH")
    crawl_max_documents: int = Field(500, alias="CRAWL_MAX_DOCUMENTS")

    poll_interval: float = Field(5.0, alias="POLL_INTERVAL")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("push_remote", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("trusted_host", mode="before")
    @classmethod
    def _normalize_host(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("commit_author", "committer")
    @classmethod
    def _validate_identity(cls, value: str) -> str:
        _identity(value)
        return value

    @field_validator("crawl_max_depth", "crawl_max_documents")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Crawl bounds must be at least 1.")
        return value

    @property
    def extra_fetch_hosts(self) -> list[str]:
        return _split_list(self.extra_fetch_hosts_raw, coerce_lower=True)

    @property
    def sender_allowlist(self) -> list[str]:
        return _split_list(self.sender_allowlist_raw, coerce_lower=True)

    @property
    def author_identity(self) -> bytes:
        name, address = _identity(self.commit_author)
        return f"{name} <{address}>".encode("utf-8")

    @property
    def committer_identity(self) -> bytes:
        name, address = _identity(self.committer)
        return f"{name} <{address}>".encode("utf-8")
