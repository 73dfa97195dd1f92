# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Archive assembly.

`tree` holds the files of one package; `deb` and `rpm` serialize a tree into a
package format; `formats.new_archive` picks the writer for a format id.
"""

from __future__ import annotations

__all__ = [
	"ar",
	"deb",
	"formats",
	"rpm",
	"target",
	"tree",
]
