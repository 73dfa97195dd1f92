# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Build configuration (`ship.json`).

The file declares shared maintainer metadata and one or more packages:

	{
	  "meta": {"author": "...", "email": "...", "homepage": "..."},
	  "package": {
	    "<name>": {
	      "version": "1.2.0" | "git" | "git-tag",
	      "manifest": {"<glob>": "<target dir>" | {"target": "<dir>", "mode": "0755"}},
	      ...
	    }
	  }
	}

Unknown keys are rejected so typos fail loudly instead of being ignored.
"""

from __future__ import annotations

import getpass
import json
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from ship.archive.formats import SUPPORTED_FORMATS
from ship.archive.target import PackageMeta
from ship.errors import CONFIG_ERROR, ShipError

DEFAULT_BRANCH = "master"

_TOP_FIELDS = {"meta", "package"}
_SHARED_META_FIELDS = {"author", "email", "homepage"}
_PACKAGE_META_FIELDS = _SHARED_META_FIELDS | {
	"summary",
	"description",
	"deb-conflict",
	"deb-requires",
	"rpm-conflict",
	"rpm-requires",
}
_PACKAGE_FIELDS = {
	"name",
	"path",
	"repo",
	"branch",
	"version",
	"generate",
	"formats",
	"ignore",
	"manifest",
	"meta",
}
_TARGET_FIELDS = {"target", "mode"}


@dataclass(frozen=True)
class ManifestTarget:
	target: str
	mode: int | None = None  # overrides the source file mode when set


@dataclass(frozen=True)
class PackageConfig:
	key: str  # name under "package"; `name` may override it
	name: str
	path: Path
	repo: Path
	branch: str
	version: str  # literal version, or "git" / "git-tag"
	manifest: dict[str, ManifestTarget]
	meta: PackageMeta
	generate: list[str] = field(default_factory=list)
	formats: list[str] = field(default_factory=list)
	ignore: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ShipConfig:
	path: Path
	packages: dict[str, PackageConfig]


def default_author() -> str:
	return getpass.getuser()


def default_email() -> str:
	return f"{getpass.getuser()}@{socket.gethostname()}"


def _fail(config_path: Path, message: str, *, package: str | None = None) -> ShipError:
	return ShipError(reason_code=CONFIG_ERROR, message=message, path=str(config_path), package=package)


def _check_fields(config_path: Path, obj: Mapping[str, Any], allowed: set[str], *, what: str, package: str | None = None) -> None:
	unknown = sorted(set(obj.keys()) - allowed)
	if unknown:
		raise _fail(config_path, f"{what} has unknown fields: {', '.join(unknown)}", package=package)


def _str_field(config_path: Path, obj: Mapping[str, Any], key: str, *, what: str, package: str | None = None) -> str:
	value = obj.get(key, "")
	if value is None:
		return ""
	if not isinstance(value, str):
		raise _fail(config_path, f"{what} field '{key}' must be a string", package=package)
	return value


def _str_list(config_path: Path, obj: Mapping[str, Any], key: str, *, what: str, package: str | None = None) -> list[str]:
	value = obj.get(key)
	if value is None:
		return []
	if not isinstance(value, list) or any(not isinstance(v, str) for v in value):
		raise _fail(config_path, f"{what} field '{key}' must be a list of strings", package=package)
	return list(value)


def _parse_target(config_path: Path, pattern: str, raw: Any, *, package: str) -> ManifestTarget:
	if isinstance(raw, str):
		return ManifestTarget(target=raw)
	if not isinstance(raw, dict):
		raise _fail(config_path, f"{pattern}: can't parse target (expected string or object)", package=package)
	_check_fields(config_path, raw, _TARGET_FIELDS, what=f"manifest target '{pattern}'", package=package)
	target = raw.get("target")
	if not isinstance(target, str):
		raise _fail(config_path, f"{pattern}: target must be a string", package=package)
	mode_raw = raw.get("mode")
	if mode_raw is None or mode_raw == "":
		return ManifestTarget(target=target)
	if not isinstance(mode_raw, str):
		raise _fail(config_path, f"{pattern}: mode must be an octal string like \"0755\"", package=package)
	try:
		mode = int(mode_raw, 8)
	except ValueError as err:
		raise _fail(config_path, f"{pattern}: invalid mode {mode_raw!r}", package=package) from err
	if mode < 0 or mode > 0o7777:
		raise _fail(config_path, f"{pattern}: mode out of range: {mode_raw!r}", package=package)
	return ManifestTarget(target=target, mode=mode)


def _parse_package(config_path: Path, key: str, raw: Any, shared: Mapping[str, str]) -> PackageConfig:
	if not isinstance(raw, dict):
		raise _fail(config_path, f"package '{key}' must be an object", package=key)
	_check_fields(config_path, raw, _PACKAGE_FIELDS, what=f"package '{key}'", package=key)
	what = f"package '{key}'"

	name = _str_field(config_path, raw, "name", what=what, package=key) or key
	base = config_path.parent
	path_str = _str_field(config_path, raw, "path", what=what, package=key)
	path = (base / path_str).resolve() if path_str else base.resolve()
	repo_str = _str_field(config_path, raw, "repo", what=what, package=key)
	repo = (base / repo_str).resolve() if repo_str else path
	branch = _str_field(config_path, raw, "branch", what=what, package=key) or DEFAULT_BRANCH

	version = _str_field(config_path, raw, "version", what=what, package=key)
	if not version:
		raise _fail(config_path, "empty version and no version detection method specified", package=key)

	manifest_raw = raw.get("manifest")
	if manifest_raw is None:
		manifest_raw = {}
	if not isinstance(manifest_raw, dict):
		raise _fail(config_path, f"{what} manifest must be an object", package=key)
	manifest = {pattern: _parse_target(config_path, pattern, t, package=key) for pattern, t in manifest_raw.items()}

	meta_raw = raw.get("meta")
	if meta_raw is None:
		meta_raw = {}
	if not isinstance(meta_raw, dict):
		raise _fail(config_path, f"{what} meta must be an object", package=key)
	_check_fields(config_path, meta_raw, _PACKAGE_META_FIELDS, what=f"{what} meta", package=key)
	mwhat = f"{what} meta"
	meta = PackageMeta(
		author=_str_field(config_path, meta_raw, "author", what=mwhat, package=key) or shared["author"],
		email=_str_field(config_path, meta_raw, "email", what=mwhat, package=key) or shared["email"],
		homepage=_str_field(config_path, meta_raw, "homepage", what=mwhat, package=key) or shared["homepage"],
		summary=_str_field(config_path, meta_raw, "summary", what=mwhat, package=key),
		description=_str_field(config_path, meta_raw, "description", what=mwhat, package=key),
		deb_conflicts=_str_list(config_path, meta_raw, "deb-conflict", what=mwhat, package=key),
		deb_requires=_str_list(config_path, meta_raw, "deb-requires", what=mwhat, package=key),
		rpm_conflicts=_str_list(config_path, meta_raw, "rpm-conflict", what=mwhat, package=key),
		rpm_requires=_str_list(config_path, meta_raw, "rpm-requires", what=mwhat, package=key),
	)

	formats = _str_list(config_path, raw, "formats", what=what, package=key) or list(SUPPORTED_FORMATS)

	return PackageConfig(
		key=key,
		name=name,
		path=path,
		repo=repo,
		branch=branch,
		version=version,
		manifest=manifest,
		meta=meta,
		generate=_str_list(config_path, raw, "generate", what=what, package=key),
		formats=sorted(set(formats)),
		ignore=_str_list(config_path, raw, "ignore", what=what, package=key),
	)


def load_config(path: Path) -> ShipConfig:
	"""Load and validate a ship config file. Relative paths resolve against its directory."""
	try:
		text = path.read_text(encoding="utf-8")
	except OSError as err:
		raise _fail(path, f"error reading {path}: {err}") from err
	try:
		data = json.loads(text)
	except json.JSONDecodeError as err:
		raise _fail(path, f"error parsing {path}: {err.msg} at line {err.lineno} column {err.colno}") from err
	if not isinstance(data, dict):
		raise _fail(path, "config must be a JSON object")
	_check_fields(path, data, _TOP_FIELDS, what="config")

	meta_raw = data.get("meta")
	if meta_raw is None:
		meta_raw = {}
	if not isinstance(meta_raw, dict):
		raise _fail(path, "config meta must be an object")
	_check_fields(path, meta_raw, _SHARED_META_FIELDS, what="config meta")
	shared = {k: _str_field(path, meta_raw, k, what="config meta") for k in sorted(_SHARED_META_FIELDS)}
	if not shared["author"]:
		shared["author"] = default_author()
	if not shared["email"]:
		shared["email"] = default_email()

	pkgs_raw = data.get("package")
	if not isinstance(pkgs_raw, dict) or not pkgs_raw:
		raise _fail(path, f"error parsing {path}: no packages defined")

	packages = {key: _parse_package(path, key, raw, shared) for key, raw in sorted(pkgs_raw.items())}
	return ShipConfig(path=path, packages=packages)
