"""
Session configuration management for the MUD mapper.

This module provides a clean, typed interface to mapper configuration,
loading directly from pyproject.toml and environment variables.
"""

import tomllib
from typing import Literal, Optional
from pathlib import Path
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


class SessionConfiguration(BaseSettings):
    """
    Typed configuration object for a mapping session.

    Loads configuration from the [tool.seemud] table of pyproject.toml.
    SEEMUD_* environment variables fill in any value the TOML leaves out.
    """

    # Server identity (used to name the persisted map)
    server_tag: str = Field(
        default="default", description="Tag identifying the MUD server for map files"
    )

    # Mapper settings
    description_hash_length: int = Field(
        default=100,
        ge=1,
        description="Description characters that take part in room identity",
    )
    title_max_length: int = Field(
        default=50, ge=1, description="Longest line still considered a room title"
    )
    auto_save_on_end: bool = Field(
        default=True, description="Save the map when the line stream ends"
    )

    # Stream settings
    line_queue_size: int = Field(
        default=100, ge=1, description="Inbound line buffer capacity"
    )
    drop_policy: Literal["oldest", "newest"] = Field(
        default="oldest", description="Which line to drop when the inbound buffer is full"
    )
    output_buffer_size: int = Field(
        default=1000, ge=1, description="Recent raw lines kept for polling readers"
    )

    # File paths
    map_cache_dir: str = Field(
        default="cache/maps", description="Directory holding persisted maps"
    )
    default_map_file: str = Field(
        default="default.json", description="Map file used when the server tag sanitizes to nothing"
    )
    log_file: str = Field(
        default="seemud_mapper.log", description="Path to human-readable log file"
    )
    json_log_file: str = Field(
        default="seemud_mapper.jsonl", description="Path to JSON log file"
    )

    model_config = SettingsConfigDict(
        env_prefix="SEEMUD_",
        env_file=None,
        case_sensitive=False,
        extra="forbid",  # Catch typos in config early
    )

    @model_validator(mode="after")
    def validate_default_map_file(self) -> "SessionConfiguration":
        """The fallback map file must be a plain JSON file name."""
        if not self.default_map_file.endswith(".json") or "/" in self.default_map_file:
            raise ValueError(
                f"default_map_file ({self.default_map_file}) must be a bare .json file name"
            )
        return self

    @classmethod
    def from_toml(cls, config_file: Optional[Path] = None) -> "SessionConfiguration":
        """
        Create SessionConfiguration by loading directly from pyproject.toml.

        Args:
            config_file: Path to TOML file (defaults to pyproject.toml)

        Returns:
            SessionConfiguration instance loaded from TOML

        Raises:
            FileNotFoundError: If config file doesn't exist
            KeyError: If the [tool.seemud] section is missing
        """
        # Load .env file if it exists to populate environment variables
        load_dotenv()

        config_file = config_file or Path("pyproject.toml")

        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        with open(config_file, "rb") as f:
            toml_data = tomllib.load(f)

        try:
            seemud_config = toml_data["tool"]["seemud"]
        except KeyError:
            raise KeyError("Missing [tool.seemud] section in pyproject.toml")

        mapper_config = seemud_config.get("mapper", {})
        stream_config = seemud_config.get("stream", {})
        files_config = seemud_config.get("files", {})

        config_dict = {
            "server_tag": seemud_config.get("server_tag"),
            # Mapper settings
            "description_hash_length": mapper_config.get("description_hash_length"),
            "title_max_length": mapper_config.get("title_max_length"),
            "auto_save_on_end": mapper_config.get("auto_save_on_end"),
            # Stream settings
            "line_queue_size": stream_config.get("line_queue_size"),
            "drop_policy": stream_config.get("drop_policy"),
            "output_buffer_size": stream_config.get("output_buffer_size"),
            # File paths
            "map_cache_dir": files_config.get("map_cache_dir"),
            "default_map_file": files_config.get("default_map_file"),
            "log_file": files_config.get("log_file"),
            "json_log_file": files_config.get("json_log_file"),
        }

        # Absent keys fall back to field defaults (and to SEEMUD_* env vars)
        config_dict = {k: v for k, v in config_dict.items() if v is not None}

        return cls(**config_dict)

    def get_map_cache_path(self) -> Path:
        return Path(self.map_cache_dir)
