# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Debian binary package writer.

A .deb is an `ar` archive with exactly three members, in this order:

- `debian-binary`: the format version, `2.0\\n`
- `control.tar.gz`: `./control` and `./md5sums`
- `data.tar.gz`: the packaged files, each preceded by its missing ancestor
  directories (root to leaf)

The inner tarballs are built completely in memory before the outer archive is
written, since `ar` member headers carry the member size up front. With a fixed
`mtime` the output is byte-for-byte reproducible (the gzip headers carry the
same timestamp as the tar and ar headers).
"""

from __future__ import annotations

import gzip
import io
import posixpath
import tarfile
import textwrap
import time
from dataclasses import dataclass
from typing import BinaryIO

from ship.archive.ar import ArWriter, read_ar
from ship.archive.target import PackageMeta, check_relations, check_single_line, host_arch
from ship.archive.tree import DIR_MODE, VirtualFileTree
from ship.errors import INVALID_METADATA, IO_ERROR, ShipError

DEBIAN_BINARY = b"2.0\n"
DEBIAN_BINARY_NAME = "debian-binary"
CONTROL_TAR = "control.tar.gz"
DATA_TAR = "data.tar.gz"
AR_MEMBER_MODE = 0o644
CONTROL_FILE_MODE = 0o644
DESCRIPTION_WIDTH = 76


@dataclass(frozen=True)
class DebDefaults:
	"""Control-file defaults applied when the build does not override them."""

	section: str = "utils"
	priority: str = "optional"


@dataclass(frozen=True)
class DataTarball:
	data: bytes
	md5sums: bytes
	size: int  # uncompressed bytes of all file entries


@dataclass(frozen=True)
class TarEntry:
	name: str
	mode: int
	size: int
	is_dir: bool
	data: bytes = b""


@dataclass(frozen=True)
class DebContents:
	"""A decoded .deb, as returned by `read_deb`."""

	member_names: list[str]
	debian_binary: bytes
	control_entries: list[TarEntry]
	data_entries: list[TarEntry]

	def control_file(self, name: str) -> bytes:
		for e in self.control_entries:
			if e.name.removeprefix("./") == name:
				return e.data
		raise KeyError(name)


def deb_arch(arch: str) -> str:
	"""Map a build architecture name (amd64, 386, ...) to the Debian one."""
	if arch == "386":
		return "i386"
	return arch


def format_long_description(text: str) -> str:
	"""
	Render an extended description for the control file.

	Each paragraph is re-flowed to 76 columns and indented by two spaces;
	paragraphs are separated by ` .` since a blank line ends the stanza.
	"""
	paragraphs = _split_paragraphs(text)
	blocks: list[str] = []
	for para in paragraphs:
		lines = textwrap.wrap(para, width=DESCRIPTION_WIDTH, break_long_words=False, break_on_hyphens=False)
		blocks.append("\n".join("  " + line for line in lines))
	return "\n .\n".join(blocks)


def _split_paragraphs(text: str) -> list[str]:
	out: list[str] = []
	cur: list[str] = []
	for line in text.splitlines():
		if line.strip():
			cur.append(line.strip())
		elif cur:
			out.append(" ".join(cur))
			cur = []
	if cur:
		out.append(" ".join(cur))
	return out


def _io_error(message: str, stream: str, err: BaseException, *, path: str | None = None) -> ShipError:
	return ShipError(reason_code=IO_ERROR, message=f"{message}: {err}", stream=stream, path=path)


def _tarinfo(name: str, *, mode: int, mtime: int, size: int = 0, is_dir: bool = False) -> tarfile.TarInfo:
	ti = tarfile.TarInfo(name=name)
	ti.type = tarfile.DIRTYPE if is_dir else tarfile.REGTYPE
	ti.mode = mode
	ti.mtime = mtime
	ti.size = size
	ti.uid = ti.gid = 0
	ti.uname = ti.gname = "root"
	return ti


def _rel_path(path: str) -> str:
	"""`/usr/bin/app`, `usr/bin/app` and `./usr/bin/app` all become `usr/bin/app`."""
	return posixpath.normpath(path).lstrip("/")


def _member_name(rel: str, *, rooted: bool, is_dir: bool = False) -> str:
	name = "./" + rel if rooted else rel
	return name + "/" if is_dir else name


class _GzipTar:
	"""A tar stream compressed into an in-memory gzip buffer."""

	def __init__(self, stream: str, mtime: int) -> None:
		self.stream = stream
		self._raw = io.BytesIO()
		self._gz = gzip.GzipFile(filename="", mode="wb", fileobj=self._raw, mtime=mtime)
		self._tar = tarfile.open(fileobj=self._gz, mode="w", format=tarfile.GNU_FORMAT)

	def add(self, info: tarfile.TarInfo, data: bytes | None = None) -> None:
		try:
			self._tar.addfile(info, io.BytesIO(data) if data is not None else None)
		except (OSError, ValueError, tarfile.TarError) as err:
			raise _io_error(f"can't write {info.name} to {self.stream}", self.stream, err, path=info.name) from err

	def finish(self) -> bytes:
		try:
			self._tar.close()
		except (OSError, tarfile.TarError) as err:
			raise _io_error(f"can't close {self.stream}", self.stream, err) from err
		try:
			self._gz.close()
		except (OSError, ValueError) as err:
			raise _io_error(f"can't close {self.stream} compressor", self.stream, err) from err
		return self._raw.getvalue()


class DebWriter:
	def __init__(self, name: str, version: str, *, arch: str | None = None, defaults: DebDefaults | None = None) -> None:
		defaults = defaults or DebDefaults()
		self.package = name
		self.version = version
		self.architecture = deb_arch(arch or host_arch())
		self.section = defaults.section
		self.priority = defaults.priority
		self.maintainer = ""
		self.homepage = ""
		self.description = ""
		self.long_description = ""
		self.conflicts: list[str] = []
		self.depends: list[str] = []
		self.tree = VirtualFileTree()

	def add_file(self, path: str, mode: int, content: bytes) -> None:
		self.tree.add(path, mode, content)

	def archive_name(self) -> str:
		return f"{self.package}_{self.version}_{self.architecture}.deb"

	def absorb_metadata(self, meta: PackageMeta) -> None:
		check_single_line("package name", self.package, required=True)
		check_single_line("package version", self.version, required=True)
		if any(c.isspace() for c in self.package + self.version):
			raise ShipError(
				reason_code=INVALID_METADATA,
				message=f"package name and version must not contain whitespace: {self.package!r} {self.version!r}",
			)
		self.maintainer = check_single_line("maintainer email", meta.email)
		self.homepage = check_single_line("homepage", meta.homepage)
		self.description = check_single_line("summary", meta.summary)
		if not isinstance(meta.description, str):
			raise ShipError(reason_code=INVALID_METADATA, message="description must be a string")
		self.long_description = meta.description
		self.conflicts = check_relations("Conflicts", meta.deb_conflicts)
		self.depends = check_relations("Depends", meta.deb_requires)

	def control_text(self, installed_kib: int) -> str:
		lines = [
			f"Package: {self.package}",
			f"Version: {self.version}",
			f"Architecture: {self.architecture}",
			f"Maintainer: {self.maintainer}",
			f"Installed-Size: {installed_kib}",
			f"Conflicts: {', '.join(self.conflicts)}",
			f"Depends: {', '.join(self.depends)}",
			f"Section: {self.section}",
			f"Priority: {self.priority}",
			f"Homepage: {self.homepage}",
			f"Description: {self.description}",
		]
		long = format_long_description(self.long_description)
		if long:
			lines.append(long)
		return "\n".join(lines) + "\n"

	def build_data_tarball(self, mtime: int) -> DataTarball:
		"""
		Build data.tar.gz.

		Once any destination is absolute, every member is written `./`-relative
		under a leading `./` entry; otherwise members are plain relative paths.
		"""
		entries = self.tree.entries()
		rooted = any(e.path.startswith("/") for e in entries)
		out = _GzipTar(DATA_TAR, mtime)
		md5_lines: list[str] = []
		emitted: set[str] = set()
		size = 0
		if rooted:
			out.add(_tarinfo("./", mode=DIR_MODE, mtime=mtime, is_dir=True))
		for entry in entries:
			rel = _rel_path(entry.path)
			md5_lines.append(f"{entry.md5_hex()}  {rel}\n")
			self._add_dirs(out, posixpath.dirname(rel), emitted, mtime, rooted=rooted)
			info = _tarinfo(_member_name(rel, rooted=rooted), mode=entry.mode, mtime=mtime, size=entry.size)
			out.add(info, entry.content)
			size += entry.size
		return DataTarball(data=out.finish(), md5sums="".join(md5_lines).encode("utf-8"), size=size)

	def _add_dirs(self, out: _GzipTar, dirname: str, emitted: set[str], mtime: int, *, rooted: bool) -> None:
		"""Emit relative `dirname` and any missing ancestors, outermost first."""
		if dirname in ("", ".") or dirname in emitted:
			return
		self._add_dirs(out, posixpath.dirname(dirname), emitted, mtime, rooted=rooted)
		out.add(_tarinfo(_member_name(dirname, rooted=rooted, is_dir=True), mode=DIR_MODE, mtime=mtime, is_dir=True))
		emitted.add(dirname)

	def build_control_tarball(self, mtime: int, size: int, md5sums: bytes) -> bytes:
		control = self.control_text(size // 1024).encode("utf-8")
		out = _GzipTar(CONTROL_TAR, mtime)
		out.add(_tarinfo("./control", mode=CONTROL_FILE_MODE, mtime=mtime, size=len(control)), control)
		out.add(_tarinfo("./md5sums", mode=CONTROL_FILE_MODE, mtime=mtime, size=len(md5sums)), md5sums)
		return out.finish()

	def serialize(self, sink: BinaryIO, *, mtime: int | None = None) -> None:
		"""
		Write the .deb to `sink`.

		`mtime` defaults to the current time; it is used for every ar, tar
		and gzip header.
		"""
		now = int(time.time()) if mtime is None else int(mtime)
		data = self.build_data_tarball(now)
		control = self.build_control_tarball(now, data.size, data.md5sums)

		deb = ArWriter(sink)
		try:
			deb.write_global_header()
		except (OSError, ValueError) as err:
			raise _io_error("can't write ar header to deb file", "ar", err) from err
		for name, body in ((DEBIAN_BINARY_NAME, DEBIAN_BINARY), (CONTROL_TAR, control), (DATA_TAR, data.data)):
			try:
				deb.write_member(name, body, mtime=now, mode=AR_MEMBER_MODE)
			except (OSError, ValueError) as err:
				raise _io_error(f"can't add {name} to deb", name, err) from err


def _read_tar_gz(blob: bytes, stream: str) -> list[TarEntry]:
	try:
		with tarfile.open(fileobj=io.BytesIO(blob), mode="r:gz") as tf:
			out: list[TarEntry] = []
			for info in tf.getmembers():
				data = b""
				if info.isfile():
					f = tf.extractfile(info)
					if f is not None:
						data = f.read()
				out.append(TarEntry(name=info.name, mode=info.mode, size=info.size, is_dir=info.isdir(), data=data))
			return out
	except (OSError, tarfile.TarError) as err:
		raise ValueError(f"can't read {stream}: {err}") from err


def read_deb(data: bytes) -> DebContents:
	"""Decode a .deb produced by `DebWriter` (or dpkg-deb with gzip members)."""
	members = read_ar(data)
	by_name = {m.name: m for m in members}
	for required in (DEBIAN_BINARY_NAME, CONTROL_TAR, DATA_TAR):
		if required not in by_name:
			raise ValueError(f"deb is missing member {required!r}")
	return DebContents(
		member_names=[m.name for m in members],
		debian_binary=by_name[DEBIAN_BINARY_NAME].data,
		control_entries=_read_tar_gz(by_name[CONTROL_TAR].data, CONTROL_TAR),
		data_entries=_read_tar_gz(by_name[DATA_TAR].data, DATA_TAR),
	)
