import os
import re
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "interval_minutes": 10,
    "host": "localhost",
    "port": 9876,
    "store": "sqlite",  # "sqlite" | "demo"
    "store_path": None,  # None = per-user cache dir, see prpulse_store.sqlite.default_db_path
    "min_fetch_spacing_seconds": 59,
    "fetch_timeout_seconds": 60,
    "max_backoff_multiplier": 4.0,
    "backoff_cooldown": 3,
    "ignored_commenters": ["github-actions", "vercel"],  # bots never count as "last commenter"
    "golden": False,
    "golden_dir": "golden",
}

_USERNAME_RE = re.compile(r"[A-Za-z0-9-]+")


def load_config(config_path: str = ".prpulse.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prpulse.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "ignored_commenters": list(DEFAULT_CONFIG["ignored_commenters"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if config["interval_minutes"] <= 0:
        raise ValueError(f"interval_minutes must be positive, got {config['interval_minutes']}")

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_PAT") or os.environ.get("GITHUB_TOKEN")
    config["github_user"] = os.environ.get("GITHUB_USER")

    return config


def validate_username(username: str) -> str:
    """Return ``username`` if it looks like a GitHub login, else raise ValueError."""
    if not username or not _USERNAME_RE.fullmatch(username):
        raise ValueError(f"{username!r} is not a valid GitHub username")
    return username
