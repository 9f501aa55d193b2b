"""Test helpers for kustodian tools."""

from pathlib import Path

import pytest

from kustodian.tool.kustodian import main

TESTDATA_PROJECT = Path(__file__).parent.parent / "testdata" / "project"


def run_command(args: list[str], capsys: pytest.CaptureFixture[str]) -> str:
    """Run the command line tool and return its output."""
    main(args)
    return capsys.readouterr().out
