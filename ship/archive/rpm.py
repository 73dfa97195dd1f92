# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
RPM writer (lead only).

This writes the legacy 96-byte RPM *lead* and nothing else: no signature
section, no header section, no cpio payload. The result identifies the package
type, architecture and OS to `file(1)`-style tools but is **not** installable.
Files and metadata are collected so the writer satisfies the same contract as
the Debian writer.

Lead layout (big-endian):
magic(4), major(u8), minor(u8), type(u16), arch(u16), name(66),
os(u16), signature_type(u16), reserved(16)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Mapping

from ship.archive.target import PackageMeta, check_relations, check_single_line, host_arch, host_os
from ship.archive.tree import VirtualFileTree
from ship.errors import INVALID_METADATA, IO_ERROR, UNSUPPORTED_PLATFORM, ShipError

RPM_MAGIC = b"\xed\xab\xee\xdb"
RPM_MAJOR = 3
RPM_MINOR = 0
BINARY_RPM = 0x0000
SOURCE_RPM = 0x0001
NAME_FIELD_SIZE = 66
DEFAULT_RPM_GROUP = "Applications/Internet"

_LEAD_STRUCT = struct.Struct(">4sBBHH66sHH16s")
LEAD_SIZE = _LEAD_STRUCT.size

# Codes follow rpmrc.in.
DEFAULT_ARCH_CODES: Mapping[str, int] = {"386": 1, "amd64": 1, "arm": 12}
DEFAULT_OS_CODES: Mapping[str, int] = {"linux": 1, "freebsd": 8, "darwin": 21}
DEFAULT_ARCH_NAMES: Mapping[str, str] = {"386": "i386", "amd64": "x86_64", "arm": "armv7hl"}


@dataclass(frozen=True)
class RPMPlatformTable:
	"""Architecture/OS lookup tables used to fill the lead."""

	arch_codes: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_ARCH_CODES))
	os_codes: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_OS_CODES))
	arch_names: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_ARCH_NAMES))


@dataclass(frozen=True)
class RPMLead:
	arch: int
	os: int
	name: bytes  # raw 66-byte field
	type: int = BINARY_RPM
	major: int = RPM_MAJOR
	minor: int = RPM_MINOR
	signature_type: int = 0
	magic: bytes = RPM_MAGIC
	reserved: bytes = b"\0" * 16

	@classmethod
	def for_package(cls, name: str, *, arch: int, os: int, type: int = BINARY_RPM) -> "RPMLead":
		# Keep at least one NUL at the end of the field.
		raw = name.encode("utf-8")[: NAME_FIELD_SIZE - 1]
		return cls(arch=arch, os=os, name=raw.ljust(NAME_FIELD_SIZE, b"\0"), type=type)

	@property
	def name_text(self) -> str:
		return self.name.split(b"\0", 1)[0].decode("utf-8", errors="replace")

	def pack(self) -> bytes:
		return _LEAD_STRUCT.pack(
			self.magic,
			self.major,
			self.minor,
			self.type,
			self.arch,
			self.name,
			self.os,
			self.signature_type,
			self.reserved,
		)

	@classmethod
	def unpack(cls, data: bytes) -> "RPMLead":
		if len(data) < LEAD_SIZE:
			raise ValueError(f"rpm lead must be {LEAD_SIZE} bytes, got {len(data)}")
		magic, major, minor, typ, arch, name, os_code, sig_type, reserved = _LEAD_STRUCT.unpack_from(data)
		if magic != RPM_MAGIC:
			raise ValueError("invalid rpm lead magic")
		return cls(
			arch=arch,
			os=os_code,
			name=name,
			type=typ,
			major=major,
			minor=minor,
			signature_type=sig_type,
			magic=magic,
			reserved=reserved,
		)


class RPMWriter:
	def __init__(
		self,
		name: str,
		version: str,
		*,
		arch: str | None = None,
		os_name: str | None = None,
		platforms: RPMPlatformTable | None = None,
	) -> None:
		platforms = platforms or RPMPlatformTable()
		goarch = arch or host_arch()
		goos = os_name or host_os()
		arch_code = platforms.arch_codes.get(goarch)
		arch_name = platforms.arch_names.get(goarch)
		if arch_code is None or arch_name is None:
			raise ShipError(reason_code=UNSUPPORTED_PLATFORM, message=f"rpm: unsupported architecture {goarch!r}")
		os_code = platforms.os_codes.get(goos)
		if os_code is None:
			raise ShipError(reason_code=UNSUPPORTED_PLATFORM, message=f"rpm: unsupported operating system {goos!r}")

		self.package = name
		self.version = version
		self.arch = arch_name
		self.group = DEFAULT_RPM_GROUP
		self.vendor = ""
		self.url = ""
		self.summary = ""
		self.description = ""
		self.conflicts: list[str] = []
		self.requires: list[str] = []
		self.tree = VirtualFileTree()
		self.lead = RPMLead.for_package(self.archive_name(), arch=arch_code, os=os_code)

	def add_file(self, path: str, mode: int, content: bytes) -> None:
		self.tree.add(path, mode, content)

	def archive_name(self) -> str:
		return f"{self.package}-{self.version}.{self.arch}.rpm"

	def absorb_metadata(self, meta: PackageMeta) -> None:
		check_single_line("package name", self.package, required=True)
		check_single_line("package version", self.version, required=True)
		if "-" in self.version:
			raise ShipError(
				reason_code=INVALID_METADATA,
				message=f"rpm version must not contain '-': {self.version!r}",
			)
		self.vendor = check_single_line("author", meta.author)
		self.url = check_single_line("homepage", meta.homepage)
		self.summary = check_single_line("summary", meta.summary)
		if not isinstance(meta.description, str):
			raise ShipError(reason_code=INVALID_METADATA, message="description must be a string")
		self.description = meta.description
		self.conflicts = check_relations("Conflicts", meta.rpm_conflicts)
		self.requires = check_relations("Requires", meta.rpm_requires)

	def serialize(self, sink: BinaryIO) -> None:
		try:
			sink.write(self.lead.pack())
		except (OSError, ValueError) as err:
			raise ShipError(reason_code=IO_ERROR, message=f"rpm: error writing lead: {err}", stream="lead") from err
