"""Configuration management for Notion Clipper."""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Dict, Optional
import toml
from loguru import logger

from notion_clipper.properties import FieldMapping

CONFIG_DIR = Path.home() / ".notion_clipper"
CONFIG_FILE = CONFIG_DIR / "config.toml"


@dataclass
class Credentials:
    """Platform credentials."""
    notion_token: str


@dataclass
class Settings:
    """Tunables for the save pipeline."""
    download_images: bool = True
    download_timeout: float = 15.0
    max_image_bytes: int = 5 * 1024 * 1024
    download_concurrency: int = 3
    upload_timeout: float = 30.0
    upload_poll_attempts: int = 3
    upload_poll_interval: float = 1.0
    requests_per_minute: int = 180
    save_timeout: float = 30.0
    migrate_images: bool = True
    notion_version: str = "2022-06-28"

    @classmethod
    def from_dict(cls, data: Dict) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown settings: {}", ", ".join(sorted(unknown)))
        return cls(**{k: v for k, v in data.items() if k in known})


class Config:
    """Manage user configuration in ~/.notion_clipper/config.toml."""

    def __init__(self, config_dir: Path = CONFIG_DIR):
        self.config_dir = config_dir
        self.config_file = config_dir / "config.toml"
        self._ensure_config_dir()

    def _ensure_config_dir(self):
        """Ensure config directory exists."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Config directory: {}", self.config_dir)

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_file.exists()

    def load(self) -> dict:
        """Load configuration from file."""
        if not self.exists():
            logger.debug("Config file does not exist, returning empty config")
            return {}

        try:
            config_data = toml.load(self.config_file)
            logger.debug("Loaded config from {}", self.config_file)
            return config_data
        except Exception as e:
            logger.error("Failed to load config: {}", e)
            return {}

    def save(self, config_data: dict):
        """Save configuration to file."""
        try:
            with open(self.config_file, 'w') as f:
                toml.dump(config_data, f)
            logger.debug("Saved config to {}", self.config_file)
        except Exception as e:
            logger.error("Failed to save config: {}", e)
            raise

    def get_credentials(self) -> Credentials:
        """Get platform credentials."""
        data = self.load()
        creds = data.get('credentials', {})
        return Credentials(notion_token=creds.get('notion', {}).get('api_token', ''))

    def save_credentials(self, notion_token: str):
        """Save platform credentials."""
        data = self.load()
        data['credentials'] = {'notion': {'api_token': notion_token}}
        self.save(data)
        logger.info("Credentials saved")

    def get_settings(self) -> Settings:
        return Settings.from_dict(self.load().get('settings', {}))

    def save_settings(self, settings: Settings):
        data = self.load()
        data['settings'] = asdict(settings)
        self.save(data)
        logger.info("Settings saved")

    def get_default_database(self) -> Optional[str]:
        """Get the default database ID."""
        return self.load().get('default_database')

    def set_default_database(self, database_id: str):
        data = self.load()
        data['default_database'] = database_id
        self.save(data)
        logger.info("Default database set to: {}", database_id)

    def get_field_mapping(self, database_id: str) -> Dict[str, FieldMapping]:
        """Field mapping for a database, keyed by property name."""
        data = self.load()
        raw = data.get('field_mappings', {}).get(database_id, {})
        mapping = {}
        for name, entry in raw.items():
            try:
                mapping[name] = FieldMapping.from_dict(name, entry)
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed field mapping '{}': {}", name, e)
        return mapping

    def save_field_mapping(self, database_id: str, mapping: Dict[str, FieldMapping]):
        data = self.load()
        if 'field_mappings' not in data:
            data['field_mappings'] = {}
        data['field_mappings'][database_id] = {
            name: field_mapping.to_dict() for name, field_mapping in mapping.items()
        }
        self.save(data)
        logger.info("Field mapping saved for database: {}", database_id)
