# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
In-memory file tree for package contents.

Packages are described as a flat `path -> content` mapping, while archive
formats need directory entries and directory listings. The tree stores files
only; directories are derived on demand from the stored paths, so the
directory view can never disagree with the file set.

Paths are slash separated and may carry a leading `/`. Lookups ignore the
leading slash: `/usr/bin/app` and `usr/bin/app` name the same entry.
"""

from __future__ import annotations

import hashlib
import posixpath
from dataclasses import dataclass
from typing import Iterator

from ship.errors import NOT_FOUND, ShipError

DIR_MODE = 0o755


@dataclass(frozen=True)
class Entry:
	"""A packaged file: destination path, permission bits and content."""

	path: str
	mode: int
	content: bytes

	@property
	def size(self) -> int:
		return len(self.content)

	def md5_hex(self) -> str:
		return hashlib.md5(self.content).hexdigest()


@dataclass(frozen=True)
class FileInfo:
	"""Result of `stat`/`list_dir`. Directories are always synthetic."""

	name: str
	mode: int
	is_dir: bool
	size: int = 0


def _key(path: str) -> str:
	return path.strip("/")


def _abs_dir(path: str) -> str:
	"""Normalize a directory query to `/` or `/a/b`."""
	return posixpath.normpath("/" + path.strip("/"))


class VirtualFileTree:
	def __init__(self) -> None:
		self._entries: dict[str, Entry] = {}

	def __len__(self) -> int:
		return len(self._entries)

	def __contains__(self, path: object) -> bool:
		return isinstance(path, str) and _key(path) in self._entries

	def __iter__(self) -> Iterator[Entry]:
		return iter(self.entries())

	def add(self, path: str, mode: int, content: bytes) -> None:
		"""Insert or overwrite the entry at `path` (last write wins)."""
		self._entries[_key(path)] = Entry(path=path, mode=int(mode), content=bytes(content))

	def entries(self) -> list[Entry]:
		"""All stored files, sorted by path."""
		return [self._entries[k] for k in sorted(self._entries)]

	def resolve(self, path: str) -> Entry:
		entry = self._entries.get(_key(path))
		if entry is None:
			raise ShipError(reason_code=NOT_FOUND, message=f"no such file: {path}", path=path)
		return entry

	def stat(self, path: str) -> FileInfo:
		"""
		Describe `path`.

		A stored file wins; otherwise `path` is a directory when at least one
		stored file lives below it.
		"""
		entry = self._entries.get(_key(path))
		if entry is not None:
			return FileInfo(name=posixpath.basename(_key(path)), mode=entry.mode, is_dir=False, size=entry.size)
		d = _abs_dir(path)
		prefix = "" if d == "/" else d[1:] + "/"
		for key in self._entries:
			if key.startswith(prefix):
				return FileInfo(name=posixpath.basename(d) or "/", mode=DIR_MODE, is_dir=True)
		raise ShipError(reason_code=NOT_FOUND, message=f"no such file or directory: {path}", path=path)

	def list_dir(self, path: str) -> list[FileInfo]:
		"""
		List the immediate children of directory `path`, sorted by name.

		Every stored file is walked from its parent directory up to the root;
		whenever a level equals `path`, the child name at that level is
		recorded. The first record for a name wins.
		"""
		want = _abs_dir(path)
		found: dict[str, FileInfo] = {}
		for key in sorted(self._entries):
			entry = self._entries[key]
			full = "/" + key
			parent = posixpath.dirname(full)
			child = posixpath.basename(full)
			is_dir = False
			while True:
				if parent == want:
					if child not in found:
						if is_dir:
							found[child] = FileInfo(name=child, mode=DIR_MODE, is_dir=True)
						else:
							found[child] = FileInfo(name=child, mode=entry.mode, is_dir=False, size=entry.size)
					break
				if parent == "/":
					break
				child = posixpath.basename(parent)
				parent = posixpath.dirname(parent)
				is_dir = True
		if not found:
			raise ShipError(reason_code=NOT_FOUND, message=f"no such directory: {path}", path=path)
		return [found[name] for name in sorted(found)]
