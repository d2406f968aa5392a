"""
YAML override document source with environment variable substitution.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..models.embedding_models import IConfigSource
from ..models.errors import ConfigurationError

logger = logging.getLogger(__name__)


class YAMLConfigSource(IConfigSource):
    """
    Loads the per-type override document from a YAML file.

    Values may reference environment variables as ${VAR} or ${VAR:default}.
    A missing file yields an empty document.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = Path(config_path).expanduser()
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    async def load_preprocessing_config(self) -> Mapping[str, Any]:
        if not self.config_path.exists():
            logger.debug(f"No override document at {self.config_path}")
            return {}

        try:
            with open(self.config_path, encoding="utf-8") as f:
                content = f.read()

            config_data = yaml.safe_load(self._substitute_environment_variables(content))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read {self.config_path}: {e}") from e

        if config_data is None:
            return {}

        if not isinstance(config_data, dict):
            raise ConfigurationError("Override document must contain a YAML mapping")

        # Allow the document to be nested under a top-level key
        return config_data.get("preprocessing", config_data)

    def _substitute_environment_variables(self, content: str) -> str:
        processed_lines = []

        for line in content.split("\n"):
            if line.strip().startswith("#"):
                processed_lines.append(line)
                continue

            def replace_env_var(match: Any) -> str:
                var_name = match.group(1)

                if ":" in var_name:
                    var_name, default_value = var_name.split(":", 1)
                    return os.getenv(var_name, default_value)

                env_value = os.getenv(var_name)
                if env_value is None:
                    raise ConfigurationError(f"Environment variable '{var_name}' is not set")
                return env_value

            processed_lines.append(self.env_var_pattern.sub(replace_env_var, line))

        return "\n".join(processed_lines)

    def save_preprocessing_config(self, document: Dict[str, Any]) -> None:
        """Write the override document atomically."""

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.config_path.with_suffix(".tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
            temp_path.replace(self.config_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise ConfigurationError(f"Failed to save {self.config_path}: {e}") from e

        logger.info(f"Saved preprocessing overrides to {self.config_path}")


class ConfigFileHandler(FileSystemEventHandler):
    """Invokes a callback when the watched override file changes."""

    def __init__(self, config_path: Path, on_change: Callable[[], None]):
        self.config_path = config_path
        self.on_change = on_change

    def on_modified(self, event: Any) -> None:
        self._handle_event(event)

    def on_created(self, event: Any) -> None:
        self._handle_event(event)

    def on_moved(self, event: Any) -> None:
        self._handle_event(event)

    def _handle_event(self, event: Any) -> None:
        if event.is_directory:
            return

        paths = {Path(event.src_path)}
        if getattr(event, "dest_path", None):
            paths.add(Path(event.dest_path))

        if self.config_path in paths:
            logger.info(f"Override document changed: {self.config_path}")
            self.on_change()


class ConfigFileWatcher:
    """watchdog observer around a single override file."""

    def __init__(self, config_path: Path, on_change: Callable[[], None]):
        self.config_path = Path(config_path).expanduser().resolve()
        self.on_change = on_change
        self._observer: Optional[Any] = None

    def start(self) -> None:
        if self._observer:
            return

        self._observer = Observer()
        self._observer.schedule(
            ConfigFileHandler(self.config_path, self.on_change),
            str(self.config_path.parent),
            recursive=False,
        )
        self._observer.start()
        logger.info(f"Started watching override document: {self.config_path}")

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Stopped override document watcher")
