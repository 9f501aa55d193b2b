"""Tests for the kustodian package."""

import importlib

import kustodian


def test_public_modules() -> None:
    """Test every public module listed by the package can be imported."""
    for name in kustodian.__all__:
        importlib.import_module(f"kustodian.{name}")
    assert {"flux", "namespace"} <= set(kustodian.__all__)
