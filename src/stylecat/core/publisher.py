"""Publish the catalog by committing and pushing the working tree.

The static API is consumed through a git-backed CDN (e.g. raw GitHub URLs or
jsDelivr), so publishing is simply ``git add -A``, ``git commit`` and
``git push`` in the repository that holds ``data/``, ``api/`` and ``images/``.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class PublishError(RuntimeError):
    """Raised when a git command fails."""


@dataclass
class PublishResult:
    committed: bool
    message: str


def default_commit_message(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"Update styles - {now:%Y-%m-%d %H:%M:%S}"


def _git(repo_dir: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess:
    logger.debug("git %s", " ".join(args))
    try:
        return subprocess.run(
            ["git", *args],
            cwd=repo_dir,
            capture_output=True,
            text=True,
            check=check,
        )
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or exc.stdout or "").strip()
        raise PublishError(f"git {args[0]} failed: {detail}") from exc
    except FileNotFoundError as exc:
        raise PublishError("git executable not found") from exc


def publish(repo_dir: Path, message: str | None = None, *, push: bool = True) -> PublishResult:
    """Stage everything, commit if anything changed, and push.

    Args:
        repo_dir: Root of the git working tree.
        message: Commit message; defaults to :func:`default_commit_message`.
        push: Whether to push after committing.

    Returns:
        A :class:`PublishResult`; ``committed`` is ``False`` when the tree was
        already clean.

    Raises:
        PublishError: If any git command fails.
    """
    _git(repo_dir, "add", "-A")

    # Exit status 0 means nothing is staged.
    diff = _git(repo_dir, "diff", "--cached", "--quiet", check=False)
    if diff.returncode == 0:
        logger.info("Nothing to publish in %s", repo_dir)
        return PublishResult(committed=False, message="Nothing to publish, everything is up to date.")
    if diff.returncode != 1:
        raise PublishError(f"git diff failed: {diff.stderr.strip()}")

    message = message or default_commit_message()
    _git(repo_dir, "commit", "-m", message)
    if push:
        _git(repo_dir, "push")
    logger.info("Published %s: %s", repo_dir, message)
    return PublishResult(committed=True, message=message)
