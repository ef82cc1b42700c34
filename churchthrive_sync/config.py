"""
Configuration for the sync core and persisted client settings.

SyncConfig is read from ~/.churchthrive/settings.yaml:

```yaml
sync:
  db_path: ~/.churchthrive/offline.db
  audio_path: ~/.churchthrive/audio
  connectivity_host: xyz.supabase.co
  check_interval_online: 30
  check_interval_offline: 10
  pull_on_sync: true
  church_id: "church-123"
```

with CHURCHTHRIVE_* environment variables overriding the file.
ClientSettings holds the UI preferences that survive restarts.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import yaml

from .access import ADMIN_ROLES, Role, as_role
from .exceptions import StorageFailure, ValidationFailure
from .remote.base import DEFAULT_AUDIO_BUCKET
from .sync.monitor import endpoint_from_url

BASE_DIR = Path.home() / ".churchthrive"
DEFAULT_SETTINGS_PATH = BASE_DIR / "settings.yaml"
DEFAULT_CLIENT_SETTINGS_PATH = BASE_DIR / "client.yaml"

ENV_PREFIX = "CHURCHTHRIVE_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _coerce(name: str, value: Any, target: Any) -> Any:
    """Convert a raw file/env value to the type of a SyncConfig field."""
    if value is None:
        return None
    try:
        if target is Path:
            return Path(str(value)).expanduser()
        if target is bool:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(text)
        if target is int:
            return int(value)
        if target is float:
            return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationFailure(name, f"invalid value: {e}", str(value)) from e
    return str(value)


@dataclass
class SyncConfig:
    """Runtime configuration of the sync core.

    Attributes:
        db_path: SQLite database file
        audio_path: Directory for recorded audio chunks
        connectivity_host: Host probed for reachability (default: SUPABASE_URL host)
        connectivity_port: Port probed
        connectivity_timeout: Probe timeout in seconds
        check_interval_online: Seconds between probes while online
        check_interval_offline: Seconds between probes while offline
        pull_on_sync: Refresh read-only caches after each push pass
        church_id: Church whose caches are pulled
        audio_bucket: Storage bucket for note audio
    """

    db_path: Path = field(default_factory=lambda: BASE_DIR / "offline.db")
    audio_path: Path = field(default_factory=lambda: BASE_DIR / "audio")
    connectivity_host: str | None = None
    connectivity_port: int = 443
    connectivity_timeout: float = 5.0
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    pull_on_sync: bool = True
    church_id: str | None = None
    audio_bucket: str = DEFAULT_AUDIO_BUCKET

    _TYPES = {
        "db_path": Path,
        "audio_path": Path,
        "connectivity_host": str,
        "connectivity_port": int,
        "connectivity_timeout": float,
        "check_interval_online": float,
        "check_interval_offline": float,
        "pull_on_sync": bool,
        "church_id": str,
        "audio_bucket": str,
    }

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path).expanduser()
        self.audio_path = Path(self.audio_path).expanduser()
        for name in ("connectivity_timeout", "check_interval_online", "check_interval_offline"):
            if getattr(self, name) <= 0:
                raise ValidationFailure(name, "must be positive", str(getattr(self, name)))
        if not 0 < self.connectivity_port < 65536:
            raise ValidationFailure("connectivity_port", "out of range", str(self.connectivity_port))

    @classmethod
    def _from_mapping(cls, values: dict[str, Any], base: SyncConfig | None = None) -> SyncConfig:
        current = asdict(base) if base is not None else {}
        for name, raw in values.items():
            if name not in cls._TYPES:
                raise ValidationFailure(name, "unknown setting")
            current[name] = _coerce(name, raw, cls._TYPES[name])
        return cls(**current)

    @classmethod
    def from_env(cls, base: SyncConfig | None = None) -> SyncConfig:
        """Apply CHURCHTHRIVE_* environment variables on top of base (or defaults).

        Recognized variables: CHURCHTHRIVE_DB_PATH, CHURCHTHRIVE_AUDIO_PATH,
        CHURCHTHRIVE_CONNECTIVITY_HOST, CHURCHTHRIVE_CONNECTIVITY_PORT,
        CHURCHTHRIVE_CONNECTIVITY_TIMEOUT, CHURCHTHRIVE_CHECK_INTERVAL_ONLINE,
        CHURCHTHRIVE_CHECK_INTERVAL_OFFLINE, CHURCHTHRIVE_PULL_ON_SYNC,
        CHURCHTHRIVE_CHURCH_ID, CHURCHTHRIVE_AUDIO_BUCKET.
        """
        values = {
            name: os.environ[f"{ENV_PREFIX}{name.upper()}"]
            for name in cls._TYPES
            if f"{ENV_PREFIX}{name.upper()}" in os.environ
        }
        return cls._from_mapping(values, base)

    @classmethod
    def from_yaml(cls, path: Path | str) -> SyncConfig:
        """Read the `sync:` section of a YAML settings file.

        A missing file yields the defaults.

        Raises:
            ValidationFailure: On unparseable YAML or invalid values
        """
        path = Path(path).expanduser()
        if not path.exists():
            return cls()
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ValidationFailure("settings", f"invalid YAML in {path}: {e}") from e
        section = data.get("sync") or {}
        if not isinstance(section, dict):
            raise ValidationFailure("sync", "section must be a mapping")
        return cls._from_mapping(section)

    @classmethod
    def load(cls, path: Path | str | None = None) -> SyncConfig:
        """File settings (default ~/.churchthrive/settings.yaml) overridden by env."""
        return cls.from_env(cls.from_yaml(path or DEFAULT_SETTINGS_PATH))

    def probe_endpoint(self) -> tuple[str, int] | None:
        """Host and port the connectivity monitor should probe."""
        if self.connectivity_host:
            return self.connectivity_host, self.connectivity_port
        supabase_url = os.environ.get("SUPABASE_URL", "")
        if not supabase_url:
            return None
        return endpoint_from_url(supabase_url, self.connectivity_port)


# =============================================================================
# Client settings
# =============================================================================

VIEW_MODES = ("admin", "member")
THEMES = ("light", "dark", "system")


@dataclass
class ClientSettings:
    """UI preferences persisted across restarts.

    Load once at startup and save at shutdown; nothing else touches the file.
    """

    view_mode: str = "admin"
    theme: str = "system"
    sidebar_open: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.view_mode not in VIEW_MODES:
            raise ValidationFailure("view_mode", f"must be one of {VIEW_MODES}", self.view_mode)
        if self.theme not in THEMES:
            raise ValidationFailure("theme", f"must be one of {THEMES}", self.theme)
        if not isinstance(self.sidebar_open, bool):
            raise ValidationFailure("sidebar_open", "must be a boolean", str(self.sidebar_open))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientSettings:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def can_toggle_view_mode(self, role: Role | str) -> bool:
        return as_role(role) in ADMIN_ROLES

    def toggle_view_mode(self, role: Role | str) -> str:
        """Switch between admin and member views (admin roles only).

        Returns:
            The view mode after the call
        """
        if self.can_toggle_view_mode(role):
            self.view_mode = "member" if self.view_mode == "admin" else "admin"
        return self.view_mode

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValidationFailure("theme", f"must be one of {THEMES}", theme)
        self.theme = theme

    def toggle_sidebar(self) -> bool:
        self.sidebar_open = not self.sidebar_open
        return self.sidebar_open

    @classmethod
    async def load(cls, path: Path | str | None = None) -> ClientSettings:
        """Read settings; a missing or corrupt file yields the defaults."""
        path = Path(path or DEFAULT_CLIENT_SETTINGS_PATH).expanduser()
        try:
            if not await aiofiles.os.path.exists(path):
                return cls()
            async with aiofiles.open(path, encoding="utf-8") as f:
                data = yaml.safe_load(await f.read()) or {}
            if not isinstance(data, dict):
                return cls()
            return cls.from_dict(data)
        except (OSError, yaml.YAMLError, ValidationFailure, TypeError):
            return cls()

    async def save(self, path: Path | str | None = None) -> Path:
        """Write settings atomically using temp file + rename."""
        self.validate()
        path = Path(path or DEFAULT_CLIENT_SETTINGS_PATH).expanduser()
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
        except OSError as e:
            raise StorageFailure("create_directory", str(path.parent), e) from e

        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".yaml")
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(yaml.safe_dump(self.to_dict(), sort_keys=True))
                await f.flush()
                os.fsync(f.fileno())
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise StorageFailure("save_settings", str(path), e) from e
        return path
