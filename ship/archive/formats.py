# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from ship.archive.deb import DebDefaults, DebWriter
from ship.archive.rpm import RPMPlatformTable, RPMWriter
from ship.archive.target import ArchiveTarget
from ship.errors import UNSUPPORTED_FORMAT, ShipError

SUPPORTED_FORMATS = ("deb", "rpm")


def new_archive(
	format_id: str,
	name: str,
	version: str,
	*,
	arch: str | None = None,
	os_name: str | None = None,
	deb_defaults: DebDefaults | None = None,
	rpm_platforms: RPMPlatformTable | None = None,
) -> ArchiveTarget:
	"""Create the writer for `format_id` ("deb" or "rpm")."""
	if format_id == "deb":
		return DebWriter(name, version, arch=arch, defaults=deb_defaults)
	if format_id == "rpm":
		return RPMWriter(name, version, arch=arch, os_name=os_name, platforms=rpm_platforms)
	raise ShipError(
		reason_code=UNSUPPORTED_FORMAT,
		message=f"unsupported format {format_id!r} (expected one of: {', '.join(SUPPORTED_FORMATS)})",
		format_id=format_id,
	)
