"""
Configuration for debrief-sync.

Settings are pydantic models assembled from layered sources, lowest
priority first:

1. files in the default locations (``~/.debrief-sync/config.yaml`` ...)
2. files passed explicitly (``--config``), in the order given
3. ``DEBRIEF_*`` environment variables, ``__`` separating nested fields
   (``DEBRIEF_SYNC__DEBOUNCE_SECONDS=0.5``)
4. programmatic overrides such as CLI flags

Files may be JSON, YAML, TOML or ``.env``. With ``enable_hot_reload`` a
watchdog observer reloads the files when they change and hands the new
config to registered callbacks on the event loop.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union

import toml
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import ConfigurationError
from .logging import get_logger


logger = get_logger("debrief-sync.config")

ENV_PREFIX = "DEBRIEF_"
ENV_NESTING = "__"
OVERRIDE_PRIORITY = 100

DEFAULT_LOCATIONS = (
    Path.home() / ".debrief-sync" / "config.yaml",
    Path.home() / ".debrief-sync" / "config.json",
    Path("debrief-sync.yaml"),
    Path("debrief-sync.toml"),
)


class SyncConfig(BaseModel):
    """Timing of the debounced writer and the sync channels."""
    debounce_seconds: float = 0.8
    saved_display_seconds: float = 2.0
    poll_interval_seconds: float = 10.0
    enable_poll: bool = True
    enable_push: bool = True
    protect_debouncing_keys: bool = True

    @field_validator('debounce_seconds', 'saved_display_seconds', 'poll_interval_seconds')
    @classmethod
    def positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval must be positive")
        return v


class RemoteConfig(BaseModel):
    """Remote store selection and connection settings."""
    backend: Literal["memory", "sqlite", "postgrest"] = "memory"
    sqlite_path: Path = Field(default_factory=lambda: Path.home() / ".debrief-sync" / "remote.db")
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    table: str = "reviews"
    timeout: float = 15.0


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = False
    directory: Optional[Path] = None
    enable_sentry: bool = False
    sentry_dsn: Optional[str] = None

    @field_validator('level', mode='before')
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class StorageConfig(BaseModel):
    """Local persistent storage (identity, unlock state, config cache)."""
    preferences_path: Path = Field(default_factory=lambda: Path.home() / ".debrief-sync" / "preferences.json")


class CatalogConfig(BaseModel):
    """Period classification and defaults."""
    current_period: str = "2025"
    default_department: str = "production"
    notification_ttl_seconds: float = 4.0

    @field_validator('current_period', 'default_department', mode='before')
    @classmethod
    def coerce_label(cls, v: Any) -> Any:
        """Numeric labels from env vars or YAML arrive as ints."""
        return str(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else v


class DebriefConfig(BaseModel):
    """Main debrief-sync configuration."""
    app_name: str = "debrief-sync"

    sync: SyncConfig = Field(default_factory=SyncConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)

    enable_hot_reload: bool = False

    model_config = ConfigDict(validate_assignment=True)


def parse_env_value(value: str) -> Any:
    """Best-effort typing of an environment string."""
    lowered = value.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    for number in (int, float):
        try:
            return number(value)
        except ValueError:
            continue
    if value.startswith("~"):
        return str(Path(value).expanduser())
    return value


def nest_env(pairs: Mapping[str, str]) -> Dict[str, Any]:
    """Turn ``DEBRIEF_SECTION__FIELD=value`` pairs into nested dicts; other names are ignored."""
    nested: Dict[str, Any] = {}
    for name, raw in pairs.items():
        if not name.startswith(ENV_PREFIX):
            continue
        *sections, leaf = name[len(ENV_PREFIX):].lower().split(ENV_NESTING)
        target = nested
        for section in sections:
            target = target.setdefault(section, {})
        target[leaf] = parse_env_value(raw)
    return nested


def _read_dotenv(text: str) -> Dict[str, Any]:
    pairs = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        name, raw = line.split("=", 1)
        pairs[name.strip()] = raw.strip().strip("'\"")
    return nest_env(pairs)


_READERS: Dict[str, Callable[[str], Any]] = {
    "json": json.loads,
    "yaml": lambda text: yaml.safe_load(text) or {},
    "toml": toml.loads,
    "env": _read_dotenv,
}

_SUFFIXES = {".json": "json", ".yaml": "yaml", ".yml": "yaml", ".toml": "toml", ".env": "env"}


def deep_merge(base: Dict[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for name, value in update.items():
        if isinstance(value, Mapping) and isinstance(merged.get(name), dict):
            merged[name] = deep_merge(merged[name], value)
        else:
            merged[name] = value
    return merged


class ConfigSource(BaseModel):
    """One layer of configuration: a file or an in-memory mapping."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"
    required: bool = False

    def read(self) -> Dict[str, Any]:
        if self.path is None:
            return self.data
        if not self.path.exists():
            if self.required:
                raise ConfigurationError(f"Config file not found: {self.path}")
            logger.debug("config_file_absent", path=str(self.path))
            return {}
        try:
            data = _READERS[self.source_type](self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError, yaml.YAMLError, toml.TomlDecodeError) as e:
            raise ConfigurationError(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{self.path} must contain a mapping at the top level")
        return data


class ConfigLoader:
    """Merges config sources by priority and validates the result."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ
        self._sources: List[ConfigSource] = []
        self._config: Optional[DebriefConfig] = None
        self._lock = asyncio.Lock()
        self._callbacks: List[Callable[[DebriefConfig], Any]] = []
        self._observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None,
        required: bool = False,
    ) -> None:
        """
        Register a file path or mapping.

        Sources at or above OVERRIDE_PRIORITY are applied after the
        environment; everything else below it. The file type comes from
        the suffix unless source_type is given.
        """
        if isinstance(source, dict):
            entry = ConfigSource(data=source, priority=priority)
        else:
            path = Path(source)
            kind = source_type or _SUFFIXES.get(path.suffix.lower())
            if kind not in _READERS:
                raise ConfigurationError(f"Unsupported config file type: {path.name}")
            entry = ConfigSource(path=path, priority=priority, source_type=kind, required=required)
        self._sources.append(entry)
        self._sources.sort(key=lambda s: s.priority)

    def _layers(self) -> Tuple[List[ConfigSource], List[ConfigSource]]:
        below = [s for s in self._sources if s.priority < OVERRIDE_PRIORITY]
        above = [s for s in self._sources if s.priority >= OVERRIDE_PRIORITY]
        return below, above

    async def load(self) -> DebriefConfig:
        """Read every source, merge, validate and remember the result."""
        async with self._lock:
            below, above = self._layers()
            merged: Dict[str, Any] = {}
            for source in below:
                merged = deep_merge(merged, source.read())
            merged = deep_merge(merged, nest_env(self._environ))
            for source in above:
                merged = deep_merge(merged, source.read())

            try:
                config = DebriefConfig.model_validate(merged)
            except ValidationError as e:
                problems = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                )
                raise ConfigurationError(f"Invalid configuration: {problems}") from e

            self._config = config
            logger.info(
                "configuration_loaded",
                files=[str(s.path) for s in self._sources if s.path is not None],
                backend=config.remote.backend,
            )

        if config.enable_hot_reload and self._observer is None:
            self._watch()
        return config

    def get_config(self) -> DebriefConfig:
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config

    def register_callback(self, callback: Callable[[DebriefConfig], Any]) -> None:
        """Call ``callback(new_config)`` on the loop after each effective reload."""
        self._callbacks.append(callback)

    def _watch(self) -> None:
        files = [s.path.resolve() for s in self._sources if s.path is not None and s.path.exists()]
        if not files:
            return
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("hot_reload_needs_running_loop")
            return

        handler = _ConfigFileWatcher(self, set(files))
        self._observer = Observer()
        for directory in {f.parent for f in files}:
            self._observer.schedule(handler, str(directory), recursive=False)
        self._observer.start()
        logger.info("hot_reload_enabled", files=[str(f) for f in files])

    def _schedule_reload(self) -> None:
        """Runs on the watchdog thread."""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(lambda: loop.create_task(self._reload()))

    async def _reload(self) -> None:
        previous = self._config
        try:
            config = await self.load()
        except ConfigurationError as e:
            logger.error("config_reload_failed", error=e.message)
            return
        if config == previous:
            return
        for callback in list(self._callbacks):
            try:
                result = callback(config)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    "config_callback_failed",
                    callback=getattr(callback, "__name__", repr(callback)),
                    error=str(e),
                )

    def shutdown(self) -> None:
        """Stop the file observer, if any."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None


class _ConfigFileWatcher(FileSystemEventHandler):
    def __init__(self, loader: ConfigLoader, files: set):
        self.loader = loader
        self.files = files

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory or Path(event.src_path).resolve() not in self.files:
            return
        logger.info("config_file_modified", path=event.src_path)
        self.loader._schedule_reload()


async def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DebriefConfig:
    """
    Load configuration from the default locations, explicit files, the
    environment and overrides, in increasing priority.

    Explicit files must exist; default locations are optional.
    """
    loader = ConfigLoader(environ=environ)
    for path in DEFAULT_LOCATIONS:
        if path.exists():
            loader.add_source(path, priority=10)
    for offset, path in enumerate(config_paths or ()):
        loader.add_source(path, priority=20 + offset, required=True)
    if overrides:
        loader.add_source(overrides, priority=OVERRIDE_PRIORITY)
    return await loader.load()


__all__ = [
    'DebriefConfig',
    'SyncConfig',
    'RemoteConfig',
    'LoggingConfig',
    'StorageConfig',
    'CatalogConfig',
    'ConfigLoader',
    'ConfigSource',
    'load_config',
    'deep_merge',
    'nest_env',
]
