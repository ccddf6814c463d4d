"""Tests for the configuration module."""

from pathlib import Path

import pytest

from qirval import Profile
from qirval._cli.config import (
    ConfigError,
    QirvalConfig,
    find_pyproject_toml,
    get_config,
    load_config,
)


def _write(tmp_path: Path, text: str) -> Path:
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(text)
    return pyproject


class TestFindPyprojectToml:
    """Tests for find_pyproject_toml function."""

    def test_finds_in_current_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in current directory."""
        pyproject = _write(tmp_path, "[project]\nname = 'test'\n")

        assert find_pyproject_toml(tmp_path) == pyproject

    def test_finds_in_parent_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in parent directory."""
        pyproject = _write(tmp_path, "[project]\nname = 'test'\n")
        subdir = tmp_path / "circuits" / "bell"
        subdir.mkdir(parents=True)

        assert find_pyproject_toml(subdir) == pyproject

    def test_returns_none_when_not_found(self, tmp_path: Path) -> None:
        """Should return None when no pyproject.toml is found."""
        assert find_pyproject_toml(tmp_path) is None


class TestLoadConfig:
    """Tests for reading [tool.qirval]."""

    def test_full_configuration(self, tmp_path: Path) -> None:
        """Should parse every supported key."""
        pyproject = _write(
            tmp_path,
            """
[tool.qirval]
profile = "Base"
strict-tracking = false
index-width = 16

[tool.qirval.functions]
__quantum__qis__rzz__body = "void (double, %Qubit, %Qubit)"
""",
        )

        config = load_config(pyproject)

        assert config.profile is Profile.BASE
        assert config.strict_tracking is False
        assert config.index_width == 16
        assert config.functions == {"__quantum__qis__rzz__body": "void (double, %Qubit, %Qubit)"}
        assert config.project_root == tmp_path

    def test_no_tool_qirval_section(self, tmp_path: Path) -> None:
        """Should return empty config when no [tool.qirval] section."""
        config = load_config(_write(tmp_path, "[project]\nname = 'test'\n"))

        assert config.profile is None
        assert config.strict_tracking is None
        assert config.index_width == 32
        assert config.functions == {}
        assert config.project_root == tmp_path

    def test_invalid_toml_raises_error(self, tmp_path: Path) -> None:
        """Should raise ConfigError for invalid TOML."""
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(_write(tmp_path, "invalid toml [[["))

    @pytest.mark.parametrize(
        ("body", "match"),
        [
            ('profile = "quantum"', r"Invalid \[tool.qirval\].profile: Unknown Profile"),
            ("profile = 1", "expected string"),
            ('strict-tracking = "yes"', "expected true or false"),
            ("index-width = 1", "expected an integer >= 2"),
            ("index-width = true", "expected an integer >= 2"),
            ('functions = "h"', "expected a table"),
            ("functions = { h = 1 }", r"functions.h: expected signature string"),
            ('output = "out.ll"', r"Unknown \[tool.qirval\] key\(s\): output"),
        ],
    )
    def test_invalid_values_raise_error(self, tmp_path: Path, body: str, match: str) -> None:
        """Should raise ConfigError naming the offending key."""
        with pytest.raises(ConfigError, match=match):
            load_config(_write(tmp_path, f"[tool.qirval]\n{body}\n"))

    def test_get_config_from_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should read the pyproject.toml found from the working directory."""
        _write(tmp_path, '[tool.qirval]\nprofile = "adaptive"\n')
        monkeypatch.chdir(tmp_path)

        assert get_config().profile is Profile.ADAPTIVE


class TestQirvalConfigDataclass:
    """Tests for the QirvalConfig dataclass."""

    def test_default_values(self) -> None:
        """Should leave profile and strictness unset by default."""
        config = QirvalConfig()

        assert config.profile is None
        assert config.strict_tracking is None
        assert config.project_root is None

    def test_frozen(self) -> None:
        """Should be frozen (immutable)."""
        config = QirvalConfig()

        with pytest.raises(AttributeError):
            config.profile = Profile.BASE  # type: ignore[misc]
