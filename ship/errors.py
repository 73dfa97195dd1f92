# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

NOT_FOUND = "NOT_FOUND"
UNSUPPORTED_PLATFORM = "UNSUPPORTED_PLATFORM"
UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
INVALID_METADATA = "INVALID_METADATA"
IO_ERROR = "IO_ERROR"

# Build driver.
CONFIG_ERROR = "CONFIG_ERROR"
MANIFEST_ERROR = "MANIFEST_ERROR"
VERSION_ERROR = "VERSION_ERROR"
GENERATE_ERROR = "GENERATE_ERROR"


@dataclass(frozen=True)
class ShipError(Exception):
	"""
	A structured, serializable error for packaging.

	`reason_code` is stable and meant for machines; `message` is for humans.
	`stream` names the sub-stream being written when an I/O step failed
	(e.g. "data.tar.gz").
	"""

	reason_code: str
	message: str
	path: str | None = None
	stream: str | None = None
	format_id: str | None = None
	package: str | None = None

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"path": self.path,
			"stream": self.stream,
			"format_id": self.format_id,
			"package": self.package,
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.package:
			parts.append(f"package={self.package}")
		if self.format_id:
			parts.append(f"format={self.format_id}")
		if self.stream:
			parts.append(f"stream={self.stream}")
		if self.path:
			parts.append(f"path={self.path}")
		return " ".join(parts)
