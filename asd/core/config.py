"""
Configuration management for asd.

Handles loading config from ``<config dir>/config.toml``, writing the
default file on first run, and locating the data/state/cache directories.

Configuration and paths are plain values passed to whoever needs them;
there is no global instance.
"""

import getpass
import os
import platform
import re
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import tomli_w

from asd.exceptions import ConfigError


APP_NAME = "asd"

DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
    "w": 7 * 24 * 60 * 60,
}
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([smhdw])")


def parse_duration(text) -> float:
    """
    Parse a duration such as ``"12h"``, ``"1h30m"`` or ``"90"`` into seconds.

    Raises:
        ConfigError: If the text is not a valid duration.
    """
    if isinstance(text, (int, float)):
        return float(text)

    value = str(text).strip().lower()
    if not value:
        raise ConfigError("Empty duration")

    try:
        return float(value)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_RE.finditer(value):
        if value[pos:match.start()].strip():
            break
        total += float(match.group(1)) * DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or value[pos:].strip():
        raise ConfigError(f"Invalid duration: {text!r}")
    return total


def _null_device() -> str:
    return "NUL" if platform.system() == "Windows" else "/dev/null"


def _default_ssh_options() -> List[str]:
    null = _null_device()
    return [
        "BatchMode=no",
        "Compression=yes",
        "ConnectionAttempts=1",
        "ConnectTimeout=10",
        f"GlobalKnownHostsFile={null}",
        "LogLevel=info",
        "NumberOfPasswordPrompts=1",
        "PasswordAuthentication=yes",
        "PreferredAuthentications=password",
        "StrictHostKeyChecking=no",
        f"UserKnownHostsFile={null}",
    ]


def _default_user() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "root"


@dataclass
class Config:
    """User configuration (``config.toml``)."""

    login_command: Dict[str, str] = field(default_factory=lambda: {"root": "$SHELL -l"})
    default_login_user: str = field(default_factory=_default_user)
    default_login_port: int = 22
    ssh_options: List[str] = field(default_factory=_default_ssh_options)
    cached_remote_password_expire_time: str = "12h"

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from TOML file, creating it with defaults if missing.

        Raises:
            ConfigError: If the file is not valid TOML or has invalid values.
        """
        path = Path(path)
        if not path.exists():
            return cls.reset(path)

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config TOML in {path}: {e}")

        config = cls()

        if "login_command" in data:
            if not isinstance(data["login_command"], dict):
                raise ConfigError("login_command must be a table")
            config.login_command = {str(k): str(v) for k, v in data["login_command"].items()}

        if "default_login_user" in data:
            config.default_login_user = str(data["default_login_user"])

        if "default_login_port" in data:
            try:
                config.default_login_port = int(data["default_login_port"])
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid default_login_port: {data['default_login_port']!r}")
            if not 1 <= config.default_login_port <= 65535:
                raise ConfigError(f"default_login_port out of range: {config.default_login_port}")

        if "ssh_options" in data:
            if not isinstance(data["ssh_options"], list):
                raise ConfigError("ssh_options must be an array")
            config.ssh_options = [str(o) for o in data["ssh_options"]]

        if "cached_remote_password_expire_time" in data:
            config.cached_remote_password_expire_time = str(data["cached_remote_password_expire_time"])
            parse_duration(config.cached_remote_password_expire_time)

        return config

    @classmethod
    def reset(cls, path: Path) -> "Config":
        """Write the default configuration to ``path`` and return it."""
        config = cls()
        config.save(path)
        return config

    def save(self, path: Path):
        """Write configuration as TOML, creating the parent directory."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            tomli_w.dump(asdict(self), f)

    @property
    def password_ttl(self) -> float:
        """Session-cache lifetime in seconds."""
        return parse_duration(self.cached_remote_password_expire_time)


@dataclass(frozen=True)
class ConfigPaths:
    """Directory layout used by asd."""

    config: Path
    data: Path
    state: Path
    cache: Path

    @classmethod
    def default(cls) -> "ConfigPaths":
        """
        Platform directories, honouring ``ASD_HOME`` and the XDG variables.
        """
        home = os.environ.get("ASD_HOME")
        if home:
            return cls.from_base(Path(home).expanduser())

        def xdg(var: str, fallback: str) -> Path:
            value = os.environ.get(var)
            base = Path(value).expanduser() if value else Path.home() / fallback
            return base / APP_NAME

        return cls(
            config=xdg("XDG_CONFIG_HOME", ".config"),
            data=xdg("XDG_DATA_HOME", ".local/share"),
            state=xdg("XDG_STATE_HOME", ".local/state"),
            cache=xdg("XDG_CACHE_HOME", ".cache"),
        )

    @classmethod
    def from_base(cls, base: Path) -> "ConfigPaths":
        """All directories under a single base directory."""
        base = Path(base)
        return cls(
            config=base / "config",
            data=base / "data",
            state=base / "state",
            cache=base / "cache",
        )

    @property
    def config_file(self) -> Path:
        return self.config / "config.toml"

    @property
    def passphrase_file(self) -> Path:
        return self.data / "passphrase.gpg"

    @property
    def credentials_dir(self) -> Path:
        return self.data / "credentials"

    def ensure_directories(self):
        """Create required directories if they don't exist."""
        for path in (self.config, self.data, self.credentials_dir, self.state, self.cache):
            path.mkdir(parents=True, exist_ok=True)
            try:
                os.chmod(path, 0o700)
            except OSError:
                pass


def load_config(paths: ConfigPaths, config_file: Optional[Path] = None) -> Config:
    """Load the configuration for ``paths`` (or an explicit file)."""
    return Config.load(config_file or paths.config_file)
