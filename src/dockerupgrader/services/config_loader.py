"""Configuration loader for dockerupgrader."""

from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dockerupgrader.constants import TRANSITION_STRATEGIES
from dockerupgrader.errors import UpgraderError
from dockerupgrader.models import Settings


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {settings_field.name for settings_field in fields(Settings)}

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise UpgraderError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise UpgraderError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise UpgraderError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise UpgraderError(f"Unknown configuration keys: {unknown_list}")

        strategy = parsed.get("transition_strategy")
        if strategy is not None and strategy not in TRANSITION_STRATEGIES:
            raise UpgraderError(
                f"transition_strategy must be one of: {', '.join(TRANSITION_STRATEGIES)}."
            )

        return parsed
