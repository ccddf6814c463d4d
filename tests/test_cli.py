"""Tests for the qirval command-line interface."""

import json
from pathlib import Path

import pytest
from conftest import with_body
from typer.testing import CliRunner

from qirval._cli.main import app

runner = CliRunner()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty project directory so that no outer pyproject.toml is picked up."""
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'circuits'\n")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _module(workdir: Path, name: str, text: str) -> Path:
    path = workdir / name
    path.write_text(text)
    return path


class TestCheckCommand:
    """Tests for `qirval check`."""

    def test_valid_module(self, workdir: Path, static_qir: str) -> None:
        """A valid module exits with code 0."""
        path = _module(workdir, "static.ll", static_qir)

        result = runner.invoke(app, ["check", str(path), "--profile", "base"])

        assert result.exit_code == 0, result.output
        assert "Module is valid" in result.output

    def test_lowering_failure(self, workdir: Path, full_qir: str) -> None:
        """A module that cannot be lowered exits with code 1."""
        path = _module(workdir, "full.ll", full_qir)

        result = runner.invoke(app, ["check", str(path), "-p", "base"])

        assert result.exit_code == 1
        assert "Lowering to base failed" in result.output

    def test_declared_profile_without_target(self, workdir: Path) -> None:
        """A module that breaks its own declared profile fails without `--profile`."""
        body = """\
  %a = call %QubitArray @__quantum__rt__qubit_allocate_array(i64 1)
  call void @__quantum__rt__qubit_release_array(%QubitArray %a)"""
        text = with_body(body, attributes='"entry_point" "qir_profiles"="base_profile"')
        path = _module(workdir, "claims_base.ll", text)

        result = runner.invoke(app, ["check", str(path)])

        assert result.exit_code == 1
        assert "Lowering to full failed" in result.output

    def test_schema_mismatch(self, workdir: Path) -> None:
        """A structural error is printed with its class name."""
        path = _module(workdir, "bad.ll", "%Qubit = type { i64 }\n")

        result = runner.invoke(app, ["check", str(path)])

        assert result.exit_code == 1
        assert "SchemaMismatch" in result.output

    def test_missing_file(self, workdir: Path) -> None:
        """An unreadable path exits with code 1."""
        result = runner.invoke(app, ["check", str(workdir / "missing.ll")])

        assert result.exit_code == 1
        assert "cannot read" in result.output

    def test_unknown_profile(self, workdir: Path, static_qir: str) -> None:
        """An unknown profile is a usage error."""
        path = _module(workdir, "static.ll", static_qir)

        result = runner.invoke(app, ["check", str(path), "-p", "quantum"])

        assert result.exit_code == 2

    def test_profile_from_config(self, workdir: Path, full_qir: str) -> None:
        """The profile defaults to [tool.qirval].profile."""
        (workdir / "pyproject.toml").write_text('[tool.qirval]\nprofile = "base"\n')
        path = _module(workdir, "full.ll", full_qir)

        assert runner.invoke(app, ["check", str(path)]).exit_code == 1
        assert runner.invoke(app, ["check", str(path), "-p", "full"]).exit_code == 0

    def test_invalid_config(self, workdir: Path, static_qir: str) -> None:
        """A broken [tool.qirval] section is reported."""
        (workdir / "pyproject.toml").write_text('[tool.qirval]\nmode = "base"\n')
        path = _module(workdir, "static.ll", static_qir)

        result = runner.invoke(app, ["check", str(path)])

        assert result.exit_code == 1
        assert "ConfigError" in result.output


class TestLowerCommand:
    """Tests for `qirval lower`."""

    def test_lower_to_stdout(self, workdir: Path, static_qir: str) -> None:
        """The lowered module is printed."""
        path = _module(workdir, "static.ll", static_qir)

        result = runner.invoke(app, ["lower", str(path), "-p", "base"])

        assert result.exit_code == 0, result.output
        assert "call void @__quantum__qis__mz__body(%Qubit {i32 1}, %Result {i32 1})" in result.stdout
        assert '"qir_profiles"="base_profile"' in result.stdout

    def test_lower_to_file(self, workdir: Path, static_qir: str) -> None:
        """`-o` writes the lowered module to a file."""
        path = _module(workdir, "static.ll", static_qir)
        output = workdir / "out" / "static.base.ll"

        result = runner.invoke(app, ["lower", str(path), "-p", "adaptive", "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert '"qir_profiles"="adaptive_profile"' in output.read_text()

    def test_lower_failure(self, workdir: Path, full_qir: str) -> None:
        """A dynamic register count cannot be lowered."""
        path = _module(workdir, "full.ll", full_qir)

        result = runner.invoke(app, ["lower", str(path), "-p", "base"])

        assert result.exit_code == 1
        assert "NonStaticIndexError" in result.output

    def test_index_width_too_small(self, workdir: Path) -> None:
        """A register larger than the index space exits with code 1."""
        body = "  %a = call %QubitArray @__quantum__rt__qubit_allocate_array(i64 3)"
        path = _module(workdir, "wide.ll", with_body(body))

        result = runner.invoke(app, ["lower", str(path), "-p", "base", "--index-width", "2"])

        assert result.exit_code == 1
        assert "IndexExhaustionError" in result.output

    def test_index_width_invalid(self, workdir: Path, static_qir: str) -> None:
        """An index width below two bits is a usage error."""
        path = _module(workdir, "static.ll", static_qir)

        result = runner.invoke(app, ["lower", str(path), "--index-width", "1"])

        assert result.exit_code == 2


class TestTrackCommand:
    """Tests for `qirval track`."""

    def test_track_with_report(self, workdir: Path, full_qir: str) -> None:
        """Live ranges are printed and a report is written."""
        path = _module(workdir, "full.ll", full_qir)
        report = workdir / "report.json"

        result = runner.invoke(app, ["track", str(path), "--report", str(report)])

        assert result.exit_code == 0, result.output
        assert "%qs[0]" in result.stdout
        data = json.loads(report.read_text())
        assert data["live_ranges"][0]["array"] == "qs"

    def test_track_violation(self, workdir: Path, full_qir: str) -> None:
        """Advisory diagnostics still fail the command."""
        text = full_qir.replace("  ret void", "  call void @__quantum__qis__h__body(%Qubit %q0)\n  ret void")
        path = _module(workdir, "late.ll", text)

        result = runner.invoke(app, ["track", str(path)])

        assert result.exit_code == 1
        assert "DanglingIndexError" in result.output

    def test_track_strict(self, workdir: Path, full_qir: str) -> None:
        """`--strict` stops at the first violation."""
        text = full_qir.replace("  ret void", "  call void @__quantum__qis__h__body(%Qubit %q0)\n  ret void")
        path = _module(workdir, "late.ll", text)

        result = runner.invoke(app, ["track", str(path), "--strict"])

        assert result.exit_code == 1
        assert "DanglingIndexError" in result.output


class TestExpandCommand:
    """Tests for `qirval expand`."""

    def test_expand(self, workdir: Path, bell_base: str) -> None:
        """A base-profile module is rewritten with registers."""
        path = _module(workdir, "bell.ll", bell_base)

        result = runner.invoke(app, ["expand", str(path)])

        assert result.exit_code == 0, result.output
        assert "@__quantum__rt__qubit_allocate_array(i64 2)" in result.stdout


class TestSchemaCommand:
    """Tests for `qirval schema`."""

    def test_schema(self, workdir: Path) -> None:
        """The report JSON schema is written."""
        output = workdir / "schema" / "report.json"

        result = runner.invoke(app, ["schema", "-o", str(output)])

        assert result.exit_code == 0, result.output
        schema = json.loads(output.read_text())
        assert schema["title"] == "ModuleReport"
        assert schema["additionalProperties"] is False
