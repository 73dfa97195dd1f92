# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Build driver: turns a loaded config into package artifacts.

Per package:
1. resolve the version (literal, `git`, `git-tag`)
2. run the `generate` commands in the package directory
3. for each format: create the writer, absorb metadata, add every file
   matched by the manifest (minus ignored paths), write the artifact

Artifacts are written to a temporary sibling file and renamed into place, so a
failed build never leaves a truncated package under the final name.
"""

from __future__ import annotations

import fnmatch
import glob
import os
import posixpath
import shlex
import stat
import subprocess
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable

from ship.archive.formats import new_archive
from ship.archive.target import ArchiveTarget
from ship.errors import CONFIG_ERROR, GENERATE_ERROR, IO_ERROR, MANIFEST_ERROR, ShipError
from ship.tool.config import ManifestTarget, PackageConfig, load_config
from ship.tool.gitver import resolve_version

Emit = Callable[[str], None]


def _quiet(_line: str) -> None:
	return None


@dataclass(frozen=True)
class BuildOptions:
	config_path: Path = Path("ship.json")
	out_dir: Path = Path(".")
	packages: list[str] | None = None
	arch: str | None = None
	os_name: str | None = None


@dataclass(frozen=True)
class BuiltArtifact:
	package: str
	version: str
	format_id: str
	path: str
	size: int
	file_count: int

	def to_dict(self) -> dict[str, Any]:
		return {
			"package": self.package,
			"version": self.version,
			"format": self.format_id,
			"path": self.path,
			"size": self.size,
			"file_count": self.file_count,
		}


@dataclass(frozen=True)
class BuildReport:
	ok: bool
	artifacts: list[BuiltArtifact]
	errors: list[ShipError]

	def to_dict(self) -> dict[str, Any]:
		return {
			"ok": self.ok,
			"artifacts": [a.to_dict() for a in sorted(self.artifacts, key=lambda a: (a.package, a.format_id))],
			"errors": [e.to_dict() for e in self.errors],
		}


def is_ignored(path: Path, patterns: list[str]) -> bool:
	"""Match shell-style `patterns` against the absolute path (`*` also crosses `/`)."""
	text = str(path)
	return any(fnmatch.fnmatchcase(text, pat) for pat in patterns)


def run_generate(pkg: PackageConfig, *, emit: Emit = _quiet) -> None:
	for command in pkg.generate:
		argv = shlex.split(command)
		if not argv:
			raise ShipError(reason_code=GENERATE_ERROR, message="empty generate command", package=pkg.name)
		emit(f"generate   {command}")
		try:
			res = subprocess.run(argv, cwd=str(pkg.path), capture_output=True, text=True, check=False)
		except OSError as err:
			raise ShipError(
				reason_code=GENERATE_ERROR,
				message=f"error running {command!r}: {err}",
				package=pkg.name,
			) from err
		if res.returncode != 0:
			detail = (res.stderr or res.stdout).strip()
			raise ShipError(
				reason_code=GENERATE_ERROR,
				message=f"error running {command!r}: exit status {res.returncode}" + (f": {detail}" if detail else ""),
				package=pkg.name,
			)


def _join_dst(target: str, rel: str) -> str:
	joined = posixpath.normpath(posixpath.join(target or ".", rel))
	if joined.startswith("//"):
		joined = joined[1:]
	return joined


def _add_path(out: ArchiveTarget, dst: str, src: Path, target: ManifestTarget, pkg: PackageConfig, emit: Emit) -> int:
	"""Add `src` (file or directory tree) at `dst`; returns the number of files added."""
	if is_ignored(src, pkg.ignore):
		emit(f"< ignore > {dst}")
		return 0
	try:
		st = src.stat()
	except OSError as err:
		raise ShipError(reason_code=IO_ERROR, message=f"can't stat {src}: {err}", path=str(src)) from err
	if stat.S_ISDIR(st.st_mode):
		count = 0
		for child in sorted(src.iterdir(), key=lambda p: p.name):
			count += _add_path(out, dst + "/" + child.name, child, target, pkg, emit)
		return count
	mode = target.mode if target.mode is not None else stat.S_IMODE(st.st_mode)
	emit(f"{stat.filemode(stat.S_IFREG | mode)} {dst}")
	try:
		data = src.read_bytes()
	except OSError as err:
		raise ShipError(reason_code=IO_ERROR, message=f"can't read {src}: {err}", path=str(src)) from err
	out.add_file(dst, mode, data)
	return 1


def populate(out: ArchiveTarget, pkg: PackageConfig, *, emit: Emit = _quiet) -> int:
	"""Expand the manifest into `out`; returns the number of files added."""
	if not pkg.manifest:
		raise ShipError(reason_code=MANIFEST_ERROR, message="empty manifest", package=pkg.name)
	count = 0
	for pattern in sorted(pkg.manifest):
		target = pkg.manifest[pattern]
		if os.path.isabs(pattern):
			raise ShipError(
				reason_code=MANIFEST_ERROR,
				message=f"{pattern}: manifest patterns must be relative to the package path",
				package=pkg.name,
			)
		matches = sorted(glob.glob(pattern, root_dir=str(pkg.path), include_hidden=True))
		if not matches:
			raise ShipError(reason_code=MANIFEST_ERROR, message=f"{pattern}: did not match any files", package=pkg.name)
		for rel in matches:
			dst = _join_dst(target.target, Path(rel).as_posix())
			count += _add_path(out, dst, pkg.path / rel, target, pkg, emit)
	return count


def write_artifact(out: ArchiveTarget, out_dir: Path) -> Path:
	out_dir.mkdir(parents=True, exist_ok=True)
	final = out_dir / out.archive_name()
	tmp = final.with_name(final.name + f".tmp.{os.getpid()}")
	try:
		with tmp.open("wb") as f:
			out.serialize(f)
		os.replace(tmp, final)
	except ShipError:
		tmp.unlink(missing_ok=True)
		raise
	except OSError as err:
		tmp.unlink(missing_ok=True)
		raise ShipError(reason_code=IO_ERROR, message=f"can't write {final}: {err}", path=str(final)) from err
	return final


def build_package(
	pkg: PackageConfig,
	*,
	out_dir: Path,
	arch: str | None = None,
	os_name: str | None = None,
	emit: Emit = _quiet,
) -> list[BuiltArtifact]:
	version = resolve_version(pkg.version, repo=pkg.repo, branch=pkg.branch)
	emit(f"building {pkg.name} {version}")
	run_generate(pkg, emit=emit)

	built: list[BuiltArtifact] = []
	for format_id in pkg.formats:
		try:
			out = new_archive(format_id, pkg.name, version, arch=arch, os_name=os_name)
			out.absorb_metadata(pkg.meta)
			count = populate(out, pkg, emit=emit)
			emit(f"           {out.archive_name()}")
			path = write_artifact(out, out_dir)
		except ShipError as err:
			raise replace(err, package=err.package or pkg.name, format_id=err.format_id or format_id) from err
		built.append(
			BuiltArtifact(
				package=pkg.name,
				version=version,
				format_id=format_id,
				path=str(path),
				size=path.stat().st_size,
				file_count=count,
			)
		)
	return built


def build_v0(opts: BuildOptions, *, emit: Emit = _quiet) -> BuildReport:
	"""Build every selected package; stops at the first failure."""
	artifacts: list[BuiltArtifact] = []
	try:
		config = load_config(opts.config_path)
		selected = sorted(config.packages)
		if opts.packages:
			missing = sorted(set(opts.packages) - set(config.packages))
			if missing:
				raise ShipError(
					reason_code=CONFIG_ERROR,
					message=f"requested package(s) not in config: {', '.join(missing)}",
					path=str(opts.config_path),
				)
			selected = sorted(set(opts.packages))
		for key in selected:
			pkg = config.packages[key]
			try:
				artifacts.extend(build_package(pkg, out_dir=opts.out_dir, arch=opts.arch, os_name=opts.os_name, emit=emit))
			except ShipError as err:
				raise replace(err, package=err.package or pkg.name) from err
		return BuildReport(ok=True, artifacts=artifacts, errors=[])
	except ShipError as err:
		return BuildReport(ok=False, artifacts=artifacts, errors=[err])
	except Exception as err:
		wrapped = ShipError(reason_code="INTERNAL_ERROR", message=str(err))
		return BuildReport(ok=False, artifacts=artifacts, errors=[wrapped])
