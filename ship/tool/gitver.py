# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Version derivation from git history.

- `git`: number of commits reachable from the configured branch
- `git-tag`: highest tag, compared as a version (numeric runs numerically)

Any other value is taken literally.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path

from ship.errors import VERSION_ERROR, ShipError

_VERSION_PART = re.compile(r"\d+|[^\d]+")


def _git(repo: Path, *args: str) -> str:
	cmd = ["git", "-C", str(repo), *args]
	try:
		res = subprocess.run(cmd, capture_output=True, text=True, check=False)
	except OSError as err:
		raise ShipError(reason_code=VERSION_ERROR, message=f"can't run git: {err}", path=str(repo)) from err
	if res.returncode != 0:
		detail = (res.stderr or res.stdout).strip()
		raise ShipError(
			reason_code=VERSION_ERROR,
			message=f"git {' '.join(args)} failed at {repo}: {detail}",
			path=str(repo),
		)
	return res.stdout


def version_key(tag: str) -> tuple[tuple[int, int | str], ...]:
	"""Sort key treating digit runs as numbers: v1.10 > v1.9."""
	text = tag[1:] if tag[:1] in ("v", "V") and tag[1:2].isdigit() else tag
	out: list[tuple[int, int | str]] = []
	for part in _VERSION_PART.findall(text):
		if part.isdigit():
			out.append((1, int(part)))
		else:
			out.append((0, part))
	return tuple(out)


def git_commit_count(repo: Path, branch: str) -> str:
	out = _git(repo, "rev-list", "--count", branch).strip()
	if not out.isdigit():
		raise ShipError(reason_code=VERSION_ERROR, message=f"can't get commit count of {branch} at {repo}", path=str(repo))
	return out


def git_latest_tag(repo: Path) -> str:
	tags = [t.strip() for t in _git(repo, "tag", "--list").splitlines() if t.strip()]
	if not tags:
		raise ShipError(reason_code=VERSION_ERROR, message=f"no git tags in repository {repo}", path=str(repo))
	return sorted(tags, key=version_key)[-1]


def resolve_version(version: str, *, repo: Path, branch: str) -> str:
	if version == "git":
		return git_commit_count(repo, branch)
	if version == "git-tag":
		return git_latest_tag(repo)
	if not version:
		raise ShipError(reason_code=VERSION_ERROR, message="empty version and no version detection method specified")
	return version
