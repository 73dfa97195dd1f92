# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Build tooling on top of `ship.archive`: config loading, version detection,
the build driver and the `ship` command line.
"""

from __future__ import annotations

__all__ = [
	"build",
	"cli",
	"config",
	"gitver",
]
