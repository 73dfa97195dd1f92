# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from ship.archive.deb import read_deb
from ship.tool.build import BuildOptions, build_v0


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(prog="ship", description="Build Debian and RPM packages from a ship.json manifest")
	sub = p.add_subparsers(dest="cmd", required=True)

	build = sub.add_parser("build", help="Build the packages declared in a config file")
	build.add_argument("--config", type=Path, default=Path("ship.json"), help="Path to config file (default: ./ship.json)")
	build.add_argument("--out-dir", type=Path, default=Path("."), help="Directory for built artifacts (default: .)")
	build.add_argument(
		"--package",
		dest="packages",
		action="append",
		default=None,
		help="Restrict the build to a package name from the config (repeatable); defaults to all packages",
	)
	build.add_argument("--arch", type=str, default=None, help="Target architecture (default: host; amd64, 386, arm, arm64)")
	build.add_argument("--os", dest="os_name", type=str, default=None, help="Target operating system for RPM leads (default: host)")
	build.add_argument("--json", action="store_true", help="Emit machine-readable JSON report")

	inspect = sub.add_parser("inspect", help="List the members and file entries of a .deb")
	inspect.add_argument("package", type=Path, help="Path to a .deb file")
	inspect.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
	return p


def _inspect_obj(path: Path) -> dict[str, Any]:
	contents = read_deb(path.read_bytes())
	return {
		"members": list(contents.member_names),
		"debian_binary": contents.debian_binary.decode("ascii", errors="replace"),
		"control": [{"name": e.name, "mode": e.mode, "size": e.size, "dir": e.is_dir} for e in contents.control_entries],
		"data": [{"name": e.name, "mode": e.mode, "size": e.size, "dir": e.is_dir} for e in contents.data_entries],
	}


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)

	if args.cmd == "build":
		opts = BuildOptions(
			config_path=args.config,
			out_dir=args.out_dir,
			packages=list(args.packages) if args.packages else None,
			arch=args.arch,
			os_name=args.os_name,
		)
		if args.json:
			report = build_v0(opts)
			print(json.dumps(report.to_dict(), sort_keys=True, separators=(",", ":")))
			return 0 if report.ok else 2
		report = build_v0(opts, emit=print)
		if report.ok:
			return 0
		for err in report.errors:
			print(f"  error: {err.format_human()}", file=sys.stderr)
		return 2

	if args.cmd == "inspect":
		try:
			obj = _inspect_obj(args.package)
		except (OSError, ValueError) as err:
			print(f"inspect: {err}", file=sys.stderr)
			return 2
		if args.json:
			print(json.dumps(obj, sort_keys=True, separators=(",", ":")))
			return 0
		print(f"{args.package}: {', '.join(obj['members'])}")
		for section in ("control", "data"):
			for e in obj[section]:
				kind = "d" if e["dir"] else "-"
				print(f"  {section:<7} {kind} {e['mode']:04o} {e['size']:>10} {e['name']}")
		return 0

	raise AssertionError("unreachable")
