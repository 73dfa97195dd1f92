# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import hashlib
import io
import posixpath
import tarfile

import pytest

from ship.archive.ar import read_ar
from ship.archive.deb import DebDefaults, DebWriter, format_long_description, read_deb
from ship.archive.target import PackageMeta
from ship.errors import INVALID_METADATA, IO_ERROR, ShipError

MTIME = 1_700_000_000


def _serialize(deb: DebWriter, mtime: int = MTIME) -> bytes:
	buf = io.BytesIO()
	deb.serialize(buf, mtime=mtime)
	return buf.getvalue()


def _tar_members(blob: bytes) -> list[tarfile.TarInfo]:
	with tarfile.open(fileobj=io.BytesIO(blob), mode="r:gz") as tf:
		return tf.getmembers()


def _tar_file(blob: bytes, name: str) -> bytes:
	with tarfile.open(fileobj=io.BytesIO(blob), mode="r:gz") as tf:
		f = tf.extractfile(name)
		assert f is not None
		return f.read()


def _members(data: bytes) -> dict[str, bytes]:
	return {m.name: m.data for m in read_ar(data)}


def test_example_package_layout() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("bin/app", 0o755, b"#!/bin/sh")
	deb.absorb_metadata(PackageMeta())
	assert deb.archive_name() == "demo_1.0_amd64.deb"

	data = _serialize(deb)
	assert data.startswith(b"!<arch>\n")
	members = read_ar(data)
	assert [m.name for m in members] == ["debian-binary", "control.tar.gz", "data.tar.gz"]
	assert members[0].data == b"2.0\n"
	assert all(m.mode == 0o644 and m.mtime == MTIME for m in members)

	entries = _tar_members(members[2].data)
	# tarfile strips the trailing slash of directory names when reading.
	assert [e.name for e in entries] == ["bin", "bin/app"]
	assert entries[0].isdir()
	assert entries[0].mode == 0o755
	assert entries[1].isfile()
	assert entries[1].mode == 0o755
	assert entries[1].size == 9

	control_entries = _tar_members(members[1].data)
	assert [e.name for e in control_entries] == ["./control", "./md5sums"]
	md5sums = _tar_file(members[1].data, "./md5sums").decode("utf-8")
	assert md5sums == f"{hashlib.md5(b'#!/bin/sh').hexdigest()}  bin/app\n"


def test_directories_precede_their_descendants() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("a/b/c.txt", 0o644, b"c")
	deb.add_file("z/y/x/w.txt", 0o644, b"w")
	deb.add_file("a/d.txt", 0o644, b"d")
	deb.add_file("/opt/tool/bin/run", 0o755, b"run")
	deb.absorb_metadata(PackageMeta())

	entries = _tar_members(_members(_serialize(deb))["data.tar.gz"])
	names = [e.name for e in entries]
	assert len(names) == len(set(names))
	dirs = {e.name for e in entries if e.isdir()}
	for pos, e in enumerate(entries):
		if not e.isfile():
			continue
		parent = posixpath.dirname(e.name)
		while parent:
			assert parent in dirs, (parent, e.name)
			assert names.index(parent) < pos, (parent, e.name)
			parent = posixpath.dirname(parent)

	# One absolute destination roots the whole archive at `./`.
	assert names[0] == "."
	assert "./opt/tool/bin/run" in names
	assert names.index("./opt") < names.index("./opt/tool") < names.index("./opt/tool/bin")
	assert names.index("./a") < names.index("./a/b") < names.index("./a/b/c.txt")


def test_relative_tree_has_no_root_entry() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("a/b/c.txt", 0o644, b"c")
	deb.add_file("a/d.txt", 0o644, b"d")
	deb.absorb_metadata(PackageMeta())
	entries = _tar_members(_members(_serialize(deb))["data.tar.gz"])
	assert [(e.name, e.isdir()) for e in entries] == [
		("a", True),
		("a/b", True),
		("a/b/c.txt", False),
		("a/d.txt", False),
	]


def test_mixed_path_forms_share_directory_entries() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("usr/a", 0o644, b"a")
	deb.add_file("/usr/b", 0o644, b"b")
	deb.add_file("./usr/c", 0o644, b"c")
	deb.absorb_metadata(PackageMeta())
	members = _members(_serialize(deb))

	entries = _tar_members(members["data.tar.gz"])
	assert [(e.name, e.isdir()) for e in entries] == [
		(".", True),
		("./usr", True),
		("./usr/c", False),
		("./usr/a", False),
		("./usr/b", False),
	]
	md5sums = _tar_file(members["control.tar.gz"], "./md5sums").decode("utf-8")
	assert [line.split("  ", 1)[1] for line in md5sums.splitlines()] == ["usr/c", "usr/a", "usr/b"]


def test_md5sums_follow_path_order_and_strip_leading_slash() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("/usr/bin/zz", 0o755, b"zz")
	deb.add_file("/etc/demo.conf", 0o644, b"conf")
	deb.absorb_metadata(PackageMeta())
	control = _members(_serialize(deb))["control.tar.gz"]
	lines = _tar_file(control, "./md5sums").decode("utf-8").splitlines()
	assert lines == [
		f"{hashlib.md5(b'conf').hexdigest()}  etc/demo.conf",
		f"{hashlib.md5(b'zz').hexdigest()}  usr/bin/zz",
	]


def test_reserialization_is_stable() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("usr/lib/demo/a.so", 0o644, b"a" * 3000)
	deb.add_file("usr/bin/demo", 0o755, b"b" * 10)
	deb.absorb_metadata(PackageMeta(summary="demo tool"))

	first = _serialize(deb, mtime=MTIME)
	second = _serialize(deb, mtime=MTIME)
	assert first == second

	later = _serialize(deb, mtime=MTIME + 3600)
	a = read_deb(first)
	b = read_deb(later)
	assert [e.name for e in a.data_entries] == [e.name for e in b.data_entries]
	assert a.control_file("md5sums") == b.control_file("md5sums")
	assert a.control_file("control") == b.control_file("control")


@pytest.mark.parametrize(
	"sizes, expected",
	[
		([1500, 700], 2),
		([1023], 0),
		([1024], 1),
		([4096, 4095], 7),
	],
)
def test_installed_size_is_truncated_kib(sizes: list[int], expected: int) -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	for i, size in enumerate(sizes):
		deb.add_file(f"data/f{i}", 0o644, b"x" * size)
	deb.absorb_metadata(PackageMeta())
	control = read_deb(_serialize(deb)).control_file("control").decode("utf-8")
	assert f"Installed-Size: {expected}\n" in control


def test_control_text_field_order_and_description() -> None:
	long = (
		"Ship assembles installable packages from a declarative manifest. "
		"It writes Debian archives byte for byte and a legacy RPM lead.\n"
		"\n"
		"Second paragraph."
	)
	deb = DebWriter("demo", "1.0", arch="386")
	deb.absorb_metadata(
		PackageMeta(
			author="Dev",
			email="dev@example.com",
			homepage="https://example.com/demo",
			summary="demo tool",
			description=long,
			deb_conflicts=["old-demo", "demo-legacy"],
			deb_requires=["libc6 (>= 2.31)"],
		)
	)
	text = deb.control_text(12)
	lines = text.splitlines()
	assert lines[:11] == [
		"Package: demo",
		"Version: 1.0",
		"Architecture: i386",
		"Maintainer: dev@example.com",
		"Installed-Size: 12",
		"Conflicts: old-demo, demo-legacy",
		"Depends: libc6 (>= 2.31)",
		"Section: utils",
		"Priority: optional",
		"Homepage: https://example.com/demo",
		"Description: demo tool",
	]
	body = lines[11:]
	assert body
	assert all(line.startswith(" ") for line in body)
	assert all(len(line) <= 78 for line in body)
	assert " ." in body
	assert body[-1] == "  Second paragraph."
	assert "" not in body
	assert text.endswith("\n")


def test_control_defaults_are_configurable() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64", defaults=DebDefaults(section="net", priority="extra"))
	deb.absorb_metadata(PackageMeta())
	text = deb.control_text(0)
	assert "Section: net\n" in text
	assert "Priority: extra\n" in text
	assert text.endswith("Description: \n")


def test_format_long_description_wraps_at_76() -> None:
	words = " ".join(["word"] * 40)
	out = format_long_description(words)
	lines = out.splitlines()
	assert len(lines) > 1
	for line in lines:
		assert line.startswith("  ")
		assert len(line) - 2 <= 76
	assert format_long_description("") == ""


@pytest.mark.parametrize(
	"meta",
	[
		PackageMeta(summary="two\nlines"),
		PackageMeta(email="a@b\n"),
		PackageMeta(deb_requires=["a, b"]),
		PackageMeta(deb_conflicts=[""]),
	],
)
def test_absorb_metadata_rejects_unmappable_values(meta: PackageMeta) -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	with pytest.raises(ShipError) as exc:
		deb.absorb_metadata(meta)
	assert exc.value.reason_code == INVALID_METADATA


def test_absorb_metadata_requires_name_and_version() -> None:
	with pytest.raises(ShipError) as exc:
		DebWriter("", "1.0", arch="amd64").absorb_metadata(PackageMeta())
	assert exc.value.reason_code == INVALID_METADATA
	with pytest.raises(ShipError):
		DebWriter("demo", "1 0", arch="amd64").absorb_metadata(PackageMeta())


class _FailingSink(io.BytesIO):
	def __init__(self, fail_at: int) -> None:
		super().__init__()
		self.fail_at = fail_at
		self.calls = 0

	def write(self, data) -> int:  # type: ignore[override]
		self.calls += 1
		if self.calls == self.fail_at:
			raise OSError("disk full")
		return super().write(data)


def test_sink_failure_names_the_sub_stream() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("bin/app", 0o755, b"#!/bin/sh")
	deb.absorb_metadata(PackageMeta())

	with pytest.raises(ShipError) as exc:
		deb.serialize(_FailingSink(fail_at=1), mtime=MTIME)
	assert exc.value.reason_code == IO_ERROR
	assert exc.value.stream == "ar"
	assert isinstance(exc.value.__cause__, OSError)

	# Writes: magic, debian-binary header, debian-binary body, control header.
	with pytest.raises(ShipError) as exc:
		deb.serialize(_FailingSink(fail_at=4), mtime=MTIME)
	assert exc.value.reason_code == IO_ERROR
	assert exc.value.stream == "control.tar.gz"
	assert "disk full" in str(exc.value)


def test_closed_sink_is_an_io_error() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("bin/app", 0o755, b"#!/bin/sh")
	deb.absorb_metadata(PackageMeta())
	sink = io.BytesIO()
	sink.close()
	with pytest.raises(ShipError) as exc:
		deb.serialize(sink, mtime=MTIME)
	assert exc.value.reason_code == IO_ERROR
	assert exc.value.stream == "ar"
	assert isinstance(exc.value.__cause__, ValueError)


def test_unencodable_entry_name_fails_inside_data_tarball() -> None:
	deb = DebWriter("demo", "1.0", arch="amd64")
	deb.add_file("bin/\ud800", 0o644, b"x")
	deb.absorb_metadata(PackageMeta())
	sink = io.BytesIO()
	with pytest.raises(ShipError) as exc:
		deb.serialize(sink, mtime=MTIME)
	assert exc.value.reason_code == IO_ERROR
	assert exc.value.stream == "data.tar.gz"
	assert exc.value.path == "bin/\ud800"
	# Inner tarballs are built before anything reaches the sink.
	assert sink.getvalue() == b""


def test_read_deb_roundtrip() -> None:
	deb = DebWriter("demo", "2.1", arch="arm64")
	deb.add_file("/usr/share/demo/data.bin", 0o644, bytes(range(256)))
	deb.absorb_metadata(PackageMeta(summary="s"))
	contents = read_deb(_serialize(deb))
	assert contents.member_names == ["debian-binary", "control.tar.gz", "data.tar.gz"]
	assert contents.debian_binary == b"2.0\n"
	files = [e for e in contents.data_entries if not e.is_dir]
	assert [(e.name, e.data) for e in files] == [("./usr/share/demo/data.bin", bytes(range(256)))]
	assert b"Architecture: arm64\n" in contents.control_file("control")
