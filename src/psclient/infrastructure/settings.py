"""
Client settings and the repository that loads them.

Settings are read from ``<name>.json`` or ``<name>.jsonc`` in a config
directory. A missing file means defaults.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_NAME = "psclient"

_JSONC_TOKENS = re.compile(r'"(?:\\.|[^"\\])*"|//[^\n]*|/\*.*?\*/', re.DOTALL)


def _strip_comments(jsonc_content: str) -> str:
    """Strip // and /* */ comments from JSONC content, leaving strings intact."""
    return _JSONC_TOKENS.sub(
        lambda m: m.group(0) if m.group(0).startswith('"') else "",
        jsonc_content,
    )


class ClientSettings(BaseModel):
    """Tunable behaviour of sessions, the executor and file transfers."""

    model_config = ConfigDict(extra="ignore")

    polling_delay_ms: int = Field(
        default=50, ge=1, le=5000,
        description="Back-off between drain loop iterations that read nothing"
    )
    chunk_size_bytes: int = Field(
        default=1024 * 1024, ge=1,
        description="Payloads at or above this size are uploaded in chunks"
    )
    hash_algorithm: str = Field(default="MD5", description="Default file hash algorithm")
    serialization_depth: int = Field(
        default=4, ge=1, le=100,
        description="ConvertTo-Json depth used for returned objects"
    )
    powershell_executable: Optional[str] = Field(
        default=None,
        description="Local PowerShell executable; discovered on PATH when unset"
    )
    input_piece_size: int = Field(
        default=150000, ge=1024,
        description="Characters per WinRM input packet"
    )

    @field_validator('hash_algorithm')
    @classmethod
    def validate_hash_algorithm(cls, v: str) -> str:
        """Validate hash algorithm is not empty."""
        if not v or not v.strip():
            raise ValueError("Hash algorithm cannot be empty")
        return v.strip().upper()

    @property
    def polling_delay(self) -> float:
        """Polling delay in seconds."""
        return self.polling_delay_ms / 1000.0


class SettingsRepository:
    """
    Loads and saves ClientSettings.

    Handles JSON and JSONC files.
    """

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)

    def load_json_file(self, filename: str, allow_jsonc: bool = True) -> Optional[Dict[str, Any]]:
        """
        Load a JSON or JSONC file.

        Args:
            filename: Name of the file to load (without extension)
            allow_jsonc: Whether to look for a .jsonc file as well

        Returns:
            Parsed data, or None when neither file exists

        Raises:
            ValueError: If a file exists but cannot be parsed
        """
        json_path = self.config_dir / f"{filename}.json"
        jsonc_path = self.config_dir / f"{filename}.jsonc"

        if json_path.exists():
            try:
                with open(json_path, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except json.JSONDecodeError as e:
                logger.error("Failed to parse JSON file %s: %s", json_path, e)
                raise ValueError(f"Invalid JSON in {json_path}") from e

        if allow_jsonc and jsonc_path.exists():
            try:
                with open(jsonc_path, 'r', encoding='utf-8') as f:
                    return json.loads(_strip_comments(f.read()))
            except json.JSONDecodeError as e:
                logger.error("Failed to parse JSONC file %s: %s", jsonc_path, e)
                raise ValueError(f"Invalid JSONC in {jsonc_path}") from e

        return None

    def load_settings(self, name: str = DEFAULT_SETTINGS_NAME) -> ClientSettings:
        """
        Load client settings.

        Raises:
            ValueError: If the file cannot be parsed or validated
        """
        data = self.load_json_file(name)
        if data is None:
            logger.debug("No settings file '%s' in %s, using defaults", name, self.config_dir)
            return ClientSettings()

        try:
            return ClientSettings(**data)
        except ValidationError as e:
            logger.error("Failed to load settings: %s", e)
            raise ValueError(f"Invalid settings: {e}") from e

    def save_settings(self, settings: ClientSettings, name: str = DEFAULT_SETTINGS_NAME) -> Path:
        """Save settings as JSON and return the file path."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.config_dir / f"{name}.json"
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(json.dumps(settings.model_dump(), indent=2, ensure_ascii=False))

        logger.info("Saved settings file: %s", filepath)
        return filepath
