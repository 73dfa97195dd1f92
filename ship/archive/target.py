# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Capability contract shared by all package-format writers.

A build fills a writer through `add_file`, attaches metadata once with
`absorb_metadata`, and finally calls `serialize` on an output stream. Writers
never call back into the build driver.
"""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol, Sequence

from ship.errors import INVALID_METADATA, ShipError


@dataclass(frozen=True)
class PackageMeta:
	"""Format-independent package metadata, as written in the build config."""

	author: str = ""
	email: str = ""
	homepage: str = ""
	summary: str = ""
	description: str = ""
	deb_conflicts: list[str] = field(default_factory=list)
	deb_requires: list[str] = field(default_factory=list)
	rpm_conflicts: list[str] = field(default_factory=list)
	rpm_requires: list[str] = field(default_factory=list)


class ArchiveTarget(Protocol):
	"""Protocol implemented by `DebWriter` and `RPMWriter`."""

	def add_file(self, path: str, mode: int, content: bytes) -> None:
		"""Store a file at `path`; a later call for the same path replaces it."""
		...

	def archive_name(self) -> str:
		"""Return the artifact file name for this package."""
		...

	def absorb_metadata(self, meta: PackageMeta) -> None:
		"""Map generic metadata to format fields; raise INVALID_METADATA on failure."""
		...

	def serialize(self, sink: BinaryIO) -> None:
		"""Write the complete package to `sink`; raise IO_ERROR on failure."""
		...


def host_arch() -> str:
	"""Return the host architecture as one of amd64, 386, arm, arm64 (others pass through)."""
	machine = platform.machine().lower()
	if machine in ("x86_64", "amd64"):
		return "amd64"
	if machine in ("i386", "i486", "i586", "i686", "x86"):
		return "386"
	if machine in ("aarch64", "arm64"):
		return "arm64"
	if machine.startswith("arm"):
		return "arm"
	return machine


def host_os() -> str:
	for name in ("linux", "freebsd", "darwin"):
		if sys.platform.startswith(name):
			return name
	return sys.platform


def check_single_line(what: str, value: str, *, required: bool = False) -> str:
	if not isinstance(value, str):
		raise ShipError(reason_code=INVALID_METADATA, message=f"{what} must be a string")
	if required and not value.strip():
		raise ShipError(reason_code=INVALID_METADATA, message=f"{what} must be non-empty")
	if "\n" in value or "\r" in value:
		raise ShipError(reason_code=INVALID_METADATA, message=f"{what} must be a single line, got: {value!r}")
	return value


def check_relations(what: str, items: Sequence[str]) -> list[str]:
	"""Validate a relation list (Depends, Conflicts, ...); entries are joined with ", "."""
	out: list[str] = []
	for item in items:
		if not isinstance(item, str) or not item.strip():
			raise ShipError(reason_code=INVALID_METADATA, message=f"{what} entries must be non-empty strings")
		if "," in item or "\n" in item:
			raise ShipError(reason_code=INVALID_METADATA, message=f"{what} entry must not contain ',' or newlines: {item!r}")
		out.append(item.strip())
	return out
