"""End-to-end tests for the procscale CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from procscale import __version__
from procscale.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's PROCSCALE_* settings out of CLI runs."""
    for name in (
        "PROCSCALE_INITIAL_WORKERS",
        "PROCSCALE_MIN_WORKERS",
        "PROCSCALE_MAX_WORKERS",
        "PROCSCALE_STEP_SIZE",
        "PROCSCALE_COOLDOWN",
        "PROCSCALE_MAX_REQUESTS",
        "PROCSCALE_TERMINATION_MODE",
    ):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Tests: version and help
# ---------------------------------------------------------------------------


def test_version_flag():
    """--version prints version and exits 0."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_version_short_flag():
    """-V also prints version."""
    result = runner.invoke(app, ["-V"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_output():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "procscale" in result.output.lower()


def test_run_help():
    """procscale run --help shows the scaling options."""
    result = runner.invoke(app, ["run", "--help"])
    assert result.exit_code == 0
    for option in ("--initial", "--max", "--step", "--cooldown", "--max-requests", "--rate"):
        assert option in result.output


# ---------------------------------------------------------------------------
# Tests: procscale init
# ---------------------------------------------------------------------------


def test_init_creates_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """procscale init creates a handler file in cwd."""
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["init", "image_resize"])
    assert result.exit_code == 0
    generated = tmp_path / "image_resize.py"
    assert generated.exists()
    content = generated.read_text()
    assert "class ImageResizeHandler" in content
    assert "@handler" in content
    assert "@unit" in content


def test_init_default_name(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    assert (tmp_path / "my_pool.py").exists()


def test_init_rejects_existing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """procscale init refuses to overwrite an existing file."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "existing.py").write_text("# placeholder")
    result = runner.invoke(app, ["init", "existing"])
    assert result.exit_code == 1


def test_init_output_is_loadable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """The generated handler loads as-is."""
    from procscale.dsl.loader import load_handler

    monkeypatch.chdir(tmp_path)
    runner.invoke(app, ["init", "starter"])

    definition = load_handler(tmp_path / "starter.py")
    assert definition.name == "Starter"
    assert definition.setup_func is not None


# ---------------------------------------------------------------------------
# Tests: procscale run
# ---------------------------------------------------------------------------


def test_run_invalid_bounds(fast_handler_file: Path):
    """Inconsistent scaling flags exit 1 before any worker starts."""
    result = runner.invoke(
        app,
        ["run", str(fast_handler_file), "--initial", "5", "--max", "2", "--duration", "1"],
    )
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_run_invalid_env(fast_handler_file: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PROCSCALE_STEP_SIZE", "many")
    result = runner.invoke(app, ["run", str(fast_handler_file), "--duration", "1"])
    assert result.exit_code == 1
    assert "PROCSCALE_STEP_SIZE" in result.output


def test_run_missing_file(tmp_path: Path):
    result = runner.invoke(app, ["run", str(tmp_path / "nope.py")])
    assert result.exit_code != 0


@pytest.mark.slow
@pytest.mark.timeout(60)
def test_run_basic(fast_handler_file: Path):
    """procscale run starts a pool, feeds it and stops cleanly."""
    result = runner.invoke(
        app,
        [
            "run",
            str(fast_handler_file),
            "--initial",
            "1",
            "--max",
            "3",
            "--rate",
            "20",
            "--duration",
            "2",
        ],
    )
    assert result.exit_code == 0, f"output: {result.output}"
    assert "Pool stopped cleanly" in result.output


@pytest.mark.slow
@pytest.mark.timeout(60)
def test_run_with_retirement(fast_handler_file: Path):
    result = runner.invoke(
        app,
        [
            "run",
            str(fast_handler_file),
            "--initial",
            "1",
            "--max-requests",
            "5",
            "--rate",
            "20",
            "--duration",
            "2",
        ],
    )
    assert result.exit_code == 0, f"output: {result.output}"
    assert "Workers Retired" in result.output
