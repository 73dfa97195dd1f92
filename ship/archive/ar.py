# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Common `ar` archive format (the outer wrapper of a .deb).

Layout:
- global magic `!<arch>\\n`
- per member: 60-byte ASCII header, body, one `\\n` pad byte when the body
  length is odd

Header fields (space padded, decimal unless noted):
name(16), mtime(12), uid(6), gid(6), mode(8, octal), size(10), fmag(2)

Only short names (<= 16 bytes, no GNU/BSD long-name tables) are supported;
Debian member names always fit.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

AR_MAGIC = b"!<arch>\n"
AR_FMAG = b"`\n"
_HEADER_STRUCT = struct.Struct("16s12s6s6s8s10s2s")
AR_HEADER_SIZE = _HEADER_STRUCT.size


@dataclass(frozen=True)
class ArMember:
	name: str
	mtime: int
	uid: int
	gid: int
	mode: int
	data: bytes


def _field(value: str, width: int) -> bytes:
	raw = value.encode("ascii")
	if len(raw) > width:
		raise ValueError(f"ar header field too long: {value!r} (max {width} bytes)")
	return raw.ljust(width, b" ")


def encode_member_header(name: str, size: int, *, mtime: int, mode: int = 0o644, uid: int = 0, gid: int = 0) -> bytes:
	return _HEADER_STRUCT.pack(
		_field(name, 16),
		_field(str(int(mtime)), 12),
		_field(str(int(uid)), 6),
		_field(str(int(gid)), 6),
		_field(format(int(mode), "o"), 8),
		_field(str(int(size)), 10),
		AR_FMAG,
	)


class ArWriter:
	"""Sequential `ar` writer on top of a binary stream."""

	def __init__(self, out: BinaryIO) -> None:
		self._out = out

	def write_global_header(self) -> None:
		self._out.write(AR_MAGIC)

	def write_member(self, name: str, data: bytes, *, mtime: int, mode: int = 0o644) -> None:
		self._out.write(encode_member_header(name, len(data), mtime=mtime, mode=mode))
		self._out.write(data)
		if len(data) % 2 == 1:
			self._out.write(b"\n")


def read_ar(data: bytes) -> list[ArMember]:
	"""Parse a complete `ar` archive held in memory."""
	if not data.startswith(AR_MAGIC):
		raise ValueError("invalid ar magic")
	members: list[ArMember] = []
	pos = len(AR_MAGIC)
	while pos < len(data):
		if pos + AR_HEADER_SIZE > len(data):
			raise ValueError("unexpected EOF while reading ar member header")
		name, mtime, uid, gid, mode, size, fmag = _HEADER_STRUCT.unpack_from(data, pos)
		if fmag != AR_FMAG:
			raise ValueError(f"invalid ar member header at offset {pos}")
		pos += AR_HEADER_SIZE
		length = int(size.decode("ascii").strip())
		if pos + length > len(data):
			raise ValueError("unexpected EOF while reading ar member body")
		members.append(
			ArMember(
				# GNU ar terminates names with `/`.
				name=name.decode("ascii").rstrip(" ").rstrip("/"),
				mtime=int(mtime.decode("ascii").strip() or 0),
				uid=int(uid.decode("ascii").strip() or 0),
				gid=int(gid.decode("ascii").strip() or 0),
				mode=int(mode.decode("ascii").strip() or "0", 8),
				data=data[pos : pos + length],
			)
		)
		pos += length + (length % 2)
	return members
