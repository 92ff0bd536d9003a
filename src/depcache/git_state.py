#!/usr/bin/env python3
"""
Git State Dependency

Invalidates cached values when a repository moves:
- branch switch
- new commit (HEAD changes)

Same branch + same HEAD = cached value still valid.
"""

import logging
import os
import subprocess
from typing import Optional, Tuple

from .dependencies import DataDependency

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SEC = 5


def _git(args, cwd: str) -> Optional[str]:
    """Run a git command, returning stripped stdout or None on failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SEC,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"Git command timeout in {cwd}: git {' '.join(args)}")
        return None
    except OSError as e:
        logger.warning(f"Error running git in {cwd}: {e}")
        return None

    if result.returncode != 0:
        logger.debug(f"git {' '.join(args)} failed in {cwd}: {result.stderr.strip()}")
        return None
    return result.stdout.strip()


def get_repo_state(path: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Fetch current repository state.

    Returns:
        (branch, head_commit); either is None when git can't tell
    """
    branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], path)
    commit = _git(["rev-parse", "HEAD"], path)

    logger.debug(f"Git state for {path}: branch={branch}, commit={commit}")
    return branch, commit


class GitDependency(DataDependency):
    """Changed when the branch or HEAD commit of a repository changes."""

    def __init__(self, path: str = "."):
        self.path = os.path.abspath(os.fspath(path))

    def generate_data(self, cache) -> Tuple[Optional[str], Optional[str]]:
        return get_repo_state(self.path)
