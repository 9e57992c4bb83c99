"""YAML configuration loader for DailyBudget.

Loads the optional config files from the config/ directory:
  notifications.yaml, display.yaml

Both files are optional; built-in defaults apply when a file is absent.
"""

from pathlib import Path

import yaml


class Config:
    """Loads and provides access to the YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._notifications: dict | None = None
        self._display: dict | None = None

    def _load(self, filename: str, required: bool = False) -> dict:
        path = self.config_dir / filename
        if not path.exists():
            if required:
                raise FileNotFoundError(f"Config file not found: {path}")
            return {}
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping at top level of {path}")
        return data

    @property
    def notifications(self) -> dict:
        if self._notifications is None:
            self._notifications = self._load("notifications.yaml")
        return self._notifications

    @property
    def display(self) -> dict:
        if self._display is None:
            self._display = self._load("display.yaml")
        return self._display

    @property
    def payment_apps(self) -> list[str]:
        """Package identifiers accepted as payment notifications."""
        return [str(a) for a in self.notifications.get("payment_apps", [])]

    @property
    def currency_symbols(self) -> list[str]:
        return [str(s) for s in self.notifications.get("currency", {}).get("symbols", [])]

    @property
    def currency_codes(self) -> list[str]:
        return [str(c) for c in self.notifications.get("currency", {}).get("codes", [])]

    @property
    def merchant_patterns(self) -> list[str]:
        """Regex sources for merchant extraction, tried in order."""
        return [str(p) for p in self.notifications.get("merchant_patterns", [])]

    @property
    def provider_labels(self) -> list[str]:
        """Lowercase labels that mark a title as the payment app's own."""
        return [str(p).lower() for p in self.notifications.get("provider_labels", [])]

    @property
    def display_currency(self) -> str:
        return str(self.display.get("currency", "EUR"))
