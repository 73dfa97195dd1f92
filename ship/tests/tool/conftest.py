# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
import pytest


@pytest.fixture(autouse=True)
def _stable_user(monkeypatch: pytest.MonkeyPatch) -> None:
	"""
	Pin the login name used for default maintainer metadata.

	Containers often run without a passwd entry for the current uid, which
	makes `getpass.getuser()` fail.
	"""
	monkeypatch.setenv("LOGNAME", "tester")
