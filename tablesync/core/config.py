"""Configuration management for the table sync tool."""
import os
import sys
from pathlib import Path
from typing import Dict, Any, Optional, List, Union
import yaml
from dataclasses import dataclass, field, asdict

from tablesync.core.exceptions import ConfigError
from tablesync.core.logging import LoggingConfig, DEFAULT_FORMAT
from tablesync.domain.models import ConnectionProfile, MigrationMode
from tablesync.infrastructure.parallel import parse_worker_count

# Set up the default configuration locations
DEFAULT_CONFIG_FILE = "config/config.yaml"
DEFAULT_CONFIG_DIRS = [
    ".",
    "~/.tablesync",
    "/etc/tablesync",
]


@dataclass
class MigrationConfig:
    """Migration engine configuration."""
    parallel_workers: int = 4
    table_timeout: float = 0  # Seconds per table attempt, 0 disables
    batch_size: int = 500
    disable_foreign_keys: bool = True
    mode: MigrationMode = MigrationMode.BOTH


@dataclass
class UIConfig:
    """Console output configuration."""
    type: str = "rich"  # rich or plain
    show_progress: bool = True


@dataclass
class Config:
    """Main configuration class."""
    connections: Dict[str, ConnectionProfile] = field(default_factory=dict)
    migration: MigrationConfig = field(default_factory=MigrationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    def get_connection(self, conn_id: str) -> ConnectionProfile:
        try:
            return self.connections[conn_id]
        except KeyError:
            raise ConfigError(f"Unknown connection id: {conn_id}")


def get_default_config_path() -> Path:
    """Get the default configuration file path.

    First checks for a config file next to the executable,
    then falls back to the bundled config file.
    """
    if getattr(sys, 'frozen', False):
        exe_dir = Path(sys.executable).parent
    else:
        exe_dir = Path(__file__).parent.parent.parent

    external_config = exe_dir / "config" / "config.yaml"
    if external_config.exists():
        return external_config

    base_dir = getattr(sys, '_MEIPASS', Path(__file__).parent.parent.parent)
    return Path(base_dir) / "config" / "config.yaml"


def _parse_connection(entry: Dict[str, Any]) -> ConnectionProfile:
    if not isinstance(entry, dict):
        raise ConfigError(f"Connection entry must be a mapping, got: {entry!r}")
    conn_id = entry.get('id')
    if not conn_id:
        raise ConfigError(f"Connection entry is missing an id: {entry.get('name', '?')}")
    try:
        port = int(entry.get('port', 3306))
    except (TypeError, ValueError):
        raise ConfigError(f"Connection {conn_id} has an invalid port: {entry.get('port')!r}")
    return ConnectionProfile(
        id=str(conn_id),
        name=entry.get('name', ''),
        host=entry.get('host', 'localhost'),
        port=port,
        user=entry.get('user', 'root'),
        password=entry.get('password', '') or '',
        database=entry.get('database', '') or '',
        use_pure=entry.get('use_pure', True),
        auth_plugin=entry.get('auth_plugin'),
        ssl=entry.get('ssl', False),
        ssl_ca=entry.get('ssl_ca'),
        ssl_cert=entry.get('ssl_cert'),
        ssl_key=entry.get('ssl_key'),
        connect_timeout=int(entry.get('connect_timeout', 10)),
    )


def config_from_dict(config_dict: Optional[Dict[str, Any]]) -> Config:
    """Build a Config from a parsed YAML document.

    Raises:
        ConfigError: If a section is malformed
    """
    config_dict = config_dict or {}
    if not isinstance(config_dict, dict):
        raise ConfigError("Configuration root must be a mapping")

    connections: Dict[str, ConnectionProfile] = {}
    for entry in config_dict.get('connections', []) or []:
        profile = _parse_connection(entry)
        if profile.id in connections:
            raise ConfigError(f"Duplicate connection id: {profile.id}")
        connections[profile.id] = profile

    migration_config = config_dict.get('migration', {}) or {}
    try:
        mode = MigrationMode.parse(migration_config.get('mode', 'both'))
    except ValueError as e:
        raise ConfigError(str(e))
    try:
        migration = MigrationConfig(
            parallel_workers=parse_worker_count(migration_config.get('parallel_workers', '')),
            table_timeout=float(migration_config.get('table_timeout', 0) or 0),
            batch_size=int(migration_config.get('batch_size', 500)),
            disable_foreign_keys=migration_config.get('disable_foreign_keys', True),
            mode=mode,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid migration settings: {str(e)}")
    if migration.batch_size < 1:
        raise ConfigError("migration.batch_size must be at least 1")
    if migration.table_timeout < 0:
        raise ConfigError("migration.table_timeout cannot be negative")

    logging_config = config_dict.get('logging', {}) or {}
    logging = LoggingConfig(
        level=logging_config.get('level', 'INFO'),
        file=logging_config.get('file', ''),
        format=logging_config.get('format', DEFAULT_FORMAT)
    )

    ui_config = config_dict.get('ui', {}) or {}
    ui = UIConfig(
        type=ui_config.get('type', 'rich'),
        show_progress=ui_config.get('show_progress', True)
    )

    return Config(
        connections=connections,
        migration=migration,
        logging=logging,
        ui=ui
    )


def load_config(config_file: Optional[Union[Path, str]] = None) -> Config:
    """Load configuration from a file.

    Args:
        config_file: Path to the configuration file

    Returns:
        Config object with loaded settings

    Raises:
        ConfigError: If configuration is invalid or missing
    """
    if config_file is None:
        config_file = _find_config_file()
        if config_file is None:
            raise ConfigError("No configuration file found")

    if isinstance(config_file, str):
        config_file = Path(config_file)

    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {config_file}")

    try:
        with open(config_file, 'r') as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {str(e)}")

    return config_from_dict(config_dict)


def _find_config_file() -> Optional[Path]:
    """Find the configuration file in the default locations.

    Returns:
        Path to the configuration file, or None if not found
    """
    if os.path.exists(DEFAULT_CONFIG_FILE):
        return Path(DEFAULT_CONFIG_FILE)

    for directory in DEFAULT_CONFIG_DIRS:
        expanded_dir = os.path.expanduser(directory)
        config_path = os.path.join(expanded_dir, "config.yaml")
        if os.path.exists(config_path):
            return Path(config_path)

    bundled = get_default_config_path()
    if bundled.exists():
        return bundled

    return None


def save_config(config: Config, file_path: Union[Path, str]) -> None:
    """Save the configuration to a file.

    Args:
        config: Configuration object
        file_path: Path to the file

    Raises:
        ConfigError: If the configuration cannot be saved
    """
    try:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)

        config_dict = _config_to_dict(config)

        with open(file_path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to save configuration: {str(e)}")


def _config_to_dict(config: Config) -> Dict[str, Any]:
    """Convert a configuration object to a dictionary.

    Args:
        config: Configuration object

    Returns:
        Dictionary representation of the configuration
    """
    connections: List[Dict[str, Any]] = []
    for profile in config.connections.values():
        entry = asdict(profile)
        # Remove None values and empty passwords for cleaner output
        connections.append({
            k: v for k, v in entry.items()
            if v is not None and not (k == 'password' and not v)
        })

    migration = asdict(config.migration)
    migration['mode'] = config.migration.mode.value

    return {
        'connections': connections,
        'migration': migration,
        'logging': asdict(config.logging),
        'ui': asdict(config.ui),
    }
