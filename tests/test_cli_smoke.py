import subprocess
import sys

from evalroc import __version__


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "evalroc", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "evalroc" in cp.stdout.lower()
    assert "roc" in cp.stdout


def test_cli_version() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "evalroc", "--version"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert __version__ in cp.stdout
