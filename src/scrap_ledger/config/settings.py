from dataclasses import dataclass, field
from pathlib import Path
import json
from typing import Dict, Any, Optional

from scrap_ledger.domain.enums import TransactionKind

# Package defaults (bundled with code)
PACKAGE_CONFIG_DIR = Path(__file__).parent / "defaults"

# User configs (in project root, gitignored)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
USER_CONFIG_DIR = PROJECT_ROOT / "config"

class ConfigLoader:
    """Load configuration with user overrides"""

    @staticmethod
    def load_config(config_name: str) -> Dict[str, Any]:
        """
        Load config with fallback: user config -> default config

        Args:
            config_name: Name of the config file (e.g., 'ledger.json')

        Raises:
            FileNotFoundError: If no config file was found

        Returns:
            Parsed JSON configuration
        """
        user_config_path = USER_CONFIG_DIR / config_name
        if user_config_path.exists():
            with open(user_config_path) as f:
                return json.load(f)

        default_config_path = PACKAGE_CONFIG_DIR / config_name
        if default_config_path.exists():
            with open(default_config_path) as f:
                return json.load(f)

        raise FileNotFoundError(
            f"Config file '{config_name}' not found in:\n"
            f" - {user_config_path}\n"
            f" - {default_config_path}"
        )

    @staticmethod
    def load_ledger_config() -> Dict[str, Any]:
        """Load ledger settings configuration"""
        return ConfigLoader.load_config('ledger.json')


@dataclass
class LedgerSettings:
    """
    Runtime settings for the ledger.

    Usage:
        # Production - loads from ConfigLoader
        settings = LedgerSettings.load()

        # Testing - inject custom config
        settings = LedgerSettings.load(config={"allocation_retries": 1})
    """
    database_path: str = "data/ledger.db"
    collection: str = "transactions"
    invoice_prefixes: Dict[TransactionKind, str] = field(default_factory=lambda: {
        TransactionKind.PURCHASE: "PSK-",
        TransactionKind.SELL: "SSK-",
    })
    invoice_number_width: int = 4
    allocation_retries: int = 3
    pending_limit: int = 200

    def __post_init__(self):
        if self.allocation_retries < 1:
            raise ValueError(f"allocation_retries must be at least 1, got {self.allocation_retries}")
        if self.invoice_number_width < 1:
            raise ValueError(f"invoice_number_width must be at least 1, got {self.invoice_number_width}")
        missing = [k.value for k in TransactionKind if k not in self.invoice_prefixes]
        if missing:
            raise ValueError(f"Missing invoice prefix for: {', '.join(missing)}")

    @classmethod
    def load(cls, config: Optional[Dict[str, Any]] = None) -> "LedgerSettings":
        """
        Build settings from configuration.

        Args:
            config: Optional config dict. If None, loads 'ledger.json' through
                the ConfigLoader. Keys that are absent keep their defaults.

        Returns:
            LedgerSettings
        """
        if config is None:
            try:
                config = ConfigLoader.load_ledger_config()
            except FileNotFoundError:
                config = {}

        defaults = cls()
        prefixes = dict(defaults.invoice_prefixes)
        for kind_name, prefix in config.get("invoice_prefixes", {}).items():
            prefixes[TransactionKind(kind_name)] = str(prefix)

        return cls(
            database_path=config.get("database_path", defaults.database_path),
            collection=config.get("collection", defaults.collection),
            invoice_prefixes=prefixes,
            invoice_number_width=int(config.get("invoice_number_width", defaults.invoice_number_width)),
            allocation_retries=int(config.get("allocation_retries", defaults.allocation_retries)),
            pending_limit=int(config.get("pending_limit", defaults.pending_limit)),
        )
