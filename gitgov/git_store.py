"""Helpers for building commits directly in a (bare) git repository."""

from __future__ import annotations

import io
import logging
import stat
import time
from pathlib import Path
from typing import Optional

from dulwich import porcelain
from dulwich.errors import GitProtocolError, NotGitRepository
from dulwich.object_store import tree_lookup_path
from dulwich.objects import Blob, Commit, Tree
from dulwich.repo import Repo

from .errors import PathCollision, RepositoryError, UseAfterCommit

logger = logging.getLogger(__name__)

FILE_MODE = 0o100644
EXECUTABLE_MODE = 0o100755
TREE_MODE = 0o040000


def open_repository(path: Path, init: bool = True) -> Repo:
    """Open the repository at ``path``, creating a bare one if allowed."""
    try:
        return Repo(str(path))
    except NotGitRepository:
        if not init:
            raise RepositoryError(f"No git repository at {path}") from None
    except OSError as exc:
        raise RepositoryError(f"Unable to open repository at {path}: {exc}") from exc

    logger.info("Initialising bare repository at %s", path)
    try:
        path.mkdir(parents=True, exist_ok=True)
        return Repo.init_bare(str(path))
    except OSError as exc:
        raise RepositoryError(f"Unable to create repository at {path}: {exc}") from exc


def reference_tip(repo: Repo, ref: str) -> Optional[bytes]:
    """Commit id the reference points at, or None if it doesn't exist yet."""
    try:
        return repo.refs[ref.encode("utf-8")]
    except KeyError:
        return None


def read_path(repo: Repo, commit_id: bytes, path: str) -> bytes:
    """Contents of the blob at ``path`` in the tree of ``commit_id``."""
    commit = repo[commit_id]
    _, sha = tree_lookup_path(repo.object_store.__getitem__, commit.tree, path.encode("utf-8"))
    return repo[sha].data


class _OpenTree:
    """Mutable copy of one tree level, materialised from the base on demand."""

    def __init__(self, base: Optional[Tree] = None) -> None:
        self.entries: dict[bytes, tuple[int, bytes]] = {}
        if base is not None:
            for entry in base.items():
                self.entries[entry.path] = (entry.mode, entry.sha)
        self.children: dict[bytes, _OpenTree] = {}

    def child(self, repo: Repo, name: bytes, path: str) -> "_OpenTree":
        if name in self.children:
            return self.children[name]
        existing = self.entries.get(name)
        if existing is None:
            node = _OpenTree()
        else:
            mode, sha = existing
            if not stat.S_ISDIR(mode):
                raise PathCollision(path, PathCollision.TREE_BLOCKED_BY_BLOB)
            try:
                node = _OpenTree(repo.object_store[sha])
            except KeyError as exc:
                raise RepositoryError(f"Missing tree object {sha!r} at {path}") from exc
        return node

    def has_tree(self, name: bytes) -> bool:
        if name in self.children:
            return True
        existing = self.entries.get(name)
        return existing is not None and stat.S_ISDIR(existing[0])

    def freeze(self, repo: Repo) -> bytes:
        """Write this level and all open children, bottom-up."""
        tree = Tree()
        for name, (mode, sha) in self.entries.items():
            if name not in self.children:
                tree.add(name, mode, sha)
        for name, node in self.children.items():
            tree.add(name, TREE_MODE, node.freeze(repo))
        repo.object_store.add_object(tree)
        return tree.id


def _split_path(path: str) -> list[bytes]:
    segments = path.strip("/").split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise ValueError(f"Invalid path segment {segment!r} in {path!r}")
    return [segment.encode("utf-8") for segment in segments]


class CommitBuilder:
    """Accumulate path writes on top of a base tree and commit them once."""

    def __init__(self, repo: Repo, parent: Optional[Commit] = None) -> None:
        self.repo = repo
        self.parent = parent
        self.ref: Optional[bytes] = None
        self._committed = False
        base_tree = None
        if parent is not None:
            try:
                base_tree = repo.object_store[parent.tree]
            except KeyError as exc:
                raise RepositoryError(f"Missing tree of commit {parent.id!r}") from exc
        self._root = _OpenTree(base_tree)

    @classmethod
    def on_reference(cls, repo: Repo, ref: str) -> "CommitBuilder":
        """Start building on the current tip of ``ref``; the commit will advance it."""
        tip = reference_tip(repo, ref)
        builder = cls(repo, repo[tip] if tip is not None else None)
        builder.ref = ref.encode("utf-8")
        return builder

    def write(self, path: str, data: bytes, mode: int = FILE_MODE) -> bytes:
        """Store ``data`` at ``path``; later writes to the same path win."""
        self._check_open()
        segments = _split_path(path)

        # Walk down first so a collision leaves the builder untouched.
        node = self._root
        trail: list[tuple[_OpenTree, bytes, _OpenTree]] = []
        for depth, name in enumerate(segments[:-1]):
            child = node.child(self.repo, name, "/".join(s.decode() for s in segments[: depth + 1]))
            trail.append((node, name, child))
            node = child
        leaf = segments[-1]
        if node.has_tree(leaf):
            raise PathCollision(path, PathCollision.BLOB_BLOCKED_BY_TREE)

        blob = Blob.from_string(data)
        self.repo.object_store.add_object(blob)
        for parent, name, child in trail:
            parent.children[name] = child
        node.entries[leaf] = (mode, blob.id)
        return blob.id

    def commit(
        self,
        author: bytes,
        committer: bytes,
        message: str,
        timestamp: Optional[int] = None,
    ) -> Commit:
        """Write the tree and a commit for it, advancing the reference if anchored on one."""
        self._check_open()
        self._committed = True

        commit = Commit()
        try:
            commit.tree = self._root.freeze(self.repo)
        except OSError as exc:
            raise RepositoryError(f"Unable to write tree objects: {exc}") from exc
        commit.parents = [self.parent.id] if self.parent is not None else []
        commit.author = author
        commit.committer = committer
        commit.author_time = commit.commit_time = int(timestamp if timestamp is not None else time.time())
        commit.author_timezone = commit.commit_timezone = 0
        commit.encoding = b"UTF-8"
        commit.message = message.encode("utf-8")
        try:
            self.repo.object_store.add_object(commit)
        except OSError as exc:
            raise RepositoryError(f"Unable to write commit object: {exc}") from exc

        if self.ref is not None:
            old = self.parent.id if self.parent is not None else None
            advance_reference(self.repo, self.ref, old, commit.id, committer, message)
        return commit

    def _check_open(self) -> None:
        if self._committed:
            raise UseAfterCommit("CommitBuilder has already been committed")


def advance_reference(
    repo: Repo,
    ref: bytes,
    old: Optional[bytes],
    new: bytes,
    committer: bytes,
    message: str,
) -> None:
    """Move ``ref`` from ``old`` to ``new``, failing if someone else moved it."""
    reflog_message = f"gitgov: {message.splitlines()[0] if message else ''}".encode("utf-8")
    try:
        if old is None:
            moved = repo.refs.add_if_new(ref, new, committer=committer, message=reflog_message)
        else:
            moved = repo.refs.set_if_equals(
                ref, old, new, committer=committer, message=reflog_message
            )
    except OSError as exc:
        raise RepositoryError(f"Unable to update {ref.decode()}: {exc}") from exc
    if not moved:
        raise RepositoryError(f"Reference {ref.decode()} moved while building commits")
    logger.info("Advanced %s to %s", ref.decode(), new.decode())


class CommitChain:
    """Commits for one email, chained on each other and published together."""

    def __init__(self, repo: Repo, ref: str) -> None:
        self.repo = repo
        self.ref = ref
        self.base_id = reference_tip(repo, ref)
        self.commits: list[Commit] = []

    @property
    def head(self) -> Optional[Commit]:
        if self.commits:
            return self.commits[-1]
        if self.base_id is not None:
            return self.repo[self.base_id]
        return None

    def builder(self) -> CommitBuilder:
        """Builder anchored on the previous commit of the chain."""
        return CommitBuilder(self.repo, self.head)

    def append(self, commit: Commit) -> None:
        head = self.head
        expected = [head.id] if head is not None else []
        if commit.parents != expected:
            raise ValueError("Commit is not a child of the chain head")
        self.commits.append(commit)

    def publish(self, committer: bytes) -> Optional[bytes]:
        """Advance the reference to the last commit; nothing happens for an empty chain."""
        if not self.commits:
            return None
        tip = self.commits[-1]
        advance_reference(
            self.repo,
            self.ref.encode("utf-8"),
            self.base_id,
            tip.id,
            committer,
            tip.message.decode("utf-8"),
        )
        return tip.id


def push_reference(repo_path: Path, remote: str, ref: str) -> bool:
    """Push ``ref`` to ``remote``; failures are logged, never raised."""
    errstream = io.BytesIO()
    try:
        porcelain.push(
            str(repo_path),
            remote,
            refspecs=[ref.encode("utf-8")],
            outstream=io.BytesIO(),
            errstream=errstream,
        )
    except (porcelain.Error, GitProtocolError, NotGitRepository, OSError) as exc:
        logger.error(
            "Push of %s to %s failed: %s %s",
            ref,
            remote,
            exc,
            errstream.getvalue().decode("utf-8", errors="replace").strip(),
        )
        return False
    logger.info("Pushed %s to %s", ref, remote)
    return True
