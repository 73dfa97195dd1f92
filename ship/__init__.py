# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
ship: package assembly for Debian and RPM targets.

Subpackages:
  archive: virtual file tree and package-format writers
  tool:    config loading, build driver and CLI
"""

__all__ = ["archive", "tool"]
