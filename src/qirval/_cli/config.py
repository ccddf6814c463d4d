"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from qirval._allocation import DEFAULT_INDEX_WIDTH
from qirval._errors import QirvalError
from qirval._kinds import Profile


class ConfigError(QirvalError):
    """Error in qirval configuration."""


@dataclass(slots=True, frozen=True)
class QirvalConfig:
    """Configuration loaded from the `[tool.qirval]` table of pyproject.toml.

    Values left unset fall back to the command-line defaults.
    """

    profile: Profile | None = None
    strict_tracking: bool | None = None
    index_width: int = DEFAULT_INDEX_WIDTH
    functions: dict[str, str] = field(default_factory=dict)
    project_root: Path | None = None


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def _parse_profile(value: object) -> Profile:
    if not isinstance(value, str):
        msg = "Invalid [tool.qirval].profile: expected string"
        raise ConfigError(msg)
    try:
        return Profile.parse(value)
    except ValueError as e:
        msg = f"Invalid [tool.qirval].profile: {e}"
        raise ConfigError(msg) from e


def _parse_index_width(value: object) -> int:
    # bool is a subclass of int
    if not isinstance(value, int) or isinstance(value, bool) or value < 2:  # noqa: PLR2004
        msg = f"Invalid [tool.qirval].index-width: expected an integer >= 2, got {value!r}"
        raise ConfigError(msg)
    return value


def _parse_functions(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        msg = "Invalid [tool.qirval].functions: expected a table of name = signature"
        raise ConfigError(msg)
    functions: dict[str, str] = {}
    for name, signature in cast("dict[str, object]", value).items():
        if not isinstance(signature, str):
            msg = f"Invalid [tool.qirval].functions.{name}: expected signature string like 'void (%Qubit)'"
            raise ConfigError(msg)
        functions[name] = signature
    return functions


def load_config(pyproject_path: Path) -> QirvalConfig:
    """Load and validate [tool.qirval] config from pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed QirvalConfig

    Raises:
        ConfigError: If the configuration is invalid

    """
    project_root = pyproject_path.parent

    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    tool_section = data.get("tool", {})
    qirval_section = tool_section.get("qirval", {})

    if not qirval_section:
        return QirvalConfig(project_root=project_root)

    unknown = set(qirval_section) - {"profile", "strict-tracking", "index-width", "functions"}
    if unknown:
        msg = f"Unknown [tool.qirval] key(s): {', '.join(sorted(unknown))}"
        raise ConfigError(msg)

    profile: Profile | None = None
    if "profile" in qirval_section:
        profile = _parse_profile(qirval_section["profile"])

    strict_tracking: bool | None = None
    if "strict-tracking" in qirval_section:
        strict_value = qirval_section["strict-tracking"]
        if not isinstance(strict_value, bool):
            msg = "Invalid [tool.qirval].strict-tracking: expected true or false"
            raise ConfigError(msg)
        strict_tracking = strict_value

    index_width = DEFAULT_INDEX_WIDTH
    if "index-width" in qirval_section:
        index_width = _parse_index_width(qirval_section["index-width"])

    functions: dict[str, str] = {}
    if "functions" in qirval_section:
        functions = _parse_functions(qirval_section["functions"])

    return QirvalConfig(
        profile=profile,
        strict_tracking=strict_tracking,
        index_width=index_width,
        functions=functions,
        project_root=project_root,
    )


def get_config() -> QirvalConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        QirvalConfig (may be empty if no pyproject.toml or no [tool.qirval] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return QirvalConfig()
    return load_config(pyproject_path)
