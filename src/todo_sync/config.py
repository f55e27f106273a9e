"""Runtime configuration for todo-sync.

Reads Dropbox app settings and sync tuning from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    TODO_SYNC_APP_KEY: Dropbox app key (required)
    TODO_SYNC_REDIRECT_URI: OAuth redirect URI registered with the app
        (optional, default: http://localhost:8765/)
    TODO_SYNC_STATE_DIR: Directory holding state.json
        (optional, default: ~/.local/share/todo_sync)
    TODO_SYNC_DEBOUNCE_SECONDS: Delay between the last edit and a sync
        pass (optional, default: 3)
    TODO_SYNC_CONFLICT_STRATEGY: interactive, local-wins, remote-wins
        or defer (optional, default: interactive)
    TODO_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URI = "http://localhost:8765/"
DEFAULT_STATE_DIR = str(Path.home() / ".local" / "share" / "todo_sync")
DEFAULT_CONNECTIVITY_URL = "https://api.dropboxapi.com"
CONFLICT_STRATEGIES = ("interactive", "local-wins", "remote-wins", "defer")


@dataclass
class Config:
    app_key: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    state_dir: str = field(default=DEFAULT_STATE_DIR)
    debounce_seconds: float = 3.0
    tolerance_ms: int = 2000
    conflict_strategy: str = "interactive"
    connectivity_url: str = DEFAULT_CONNECTIVITY_URL
    connectivity_interval: float = 15.0
    debug: bool = False


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_float_env(key: str, low: float, high: float) -> float | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low:g} and {high:g}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low:g} and {high:g}"
        )
    return value


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the app key is empty, the redirect URI is malformed,
            or a tuning value is out of range.
    """
    config.app_key = config.app_key.strip()
    if not config.app_key:
        raise ValueError(
            "Dropbox app key cannot be empty. Set TODO_SYNC_APP_KEY environment variable."
        )

    config.redirect_uri = config.redirect_uri.strip()
    if not config.redirect_uri.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid redirect URI '{config.redirect_uri}': must start with http:// or https://"
        )
    if not urlparse(config.redirect_uri).hostname:
        raise ValueError(
            f"Invalid redirect URI '{config.redirect_uri}': URL must include a hostname"
        )

    if config.debounce_seconds <= 0:
        raise ValueError("debounce_seconds must be greater than zero")

    if config.tolerance_ms < 0:
        raise ValueError("tolerance_ms cannot be negative")

    if config.conflict_strategy not in CONFLICT_STRATEGIES:
        raise ValueError(
            f"Unknown conflict strategy '{config.conflict_strategy}'. "
            f"Valid strategies: {list(CONFLICT_STRATEGIES)}"
        )

    if config.connectivity_interval < 1:
        raise ValueError("connectivity_interval must be at least 1 second")

    if config.redirect_uri.startswith("http://") and urlparse(
        config.redirect_uri
    ).hostname not in ("localhost", "127.0.0.1"):
        logger.warning(
            "WARNING: redirect URI %s is plain http on a non-local host",
            config.redirect_uri,
        )


def load_config(
    app_key: str | None = None,
    redirect_uri: str | None = None,
    state_dir: str | None = None,
    conflict_strategy: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        app_key: Override Dropbox app key.
        redirect_uri: Override OAuth redirect URI.
        state_dir: Override the state directory.
        conflict_strategy: Override the conflict strategy.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict merged from the YAML ``dropbox`` and
            ``sync`` sections. Used when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the app key is missing after checking all sources,
            or any value fails validation.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    final_app_key = (
        app_key or os.getenv("TODO_SYNC_APP_KEY") or fb.get("app_key")
    )
    if not final_app_key:
        raise ValueError(
            "Dropbox app key not found. Set TODO_SYNC_APP_KEY environment variable, "
            "pass --app-key CLI argument, or add 'app_key' to config.yml."
        )

    final_redirect = (
        redirect_uri
        or os.getenv("TODO_SYNC_REDIRECT_URI")
        or fb.get("redirect_uri")
        or DEFAULT_REDIRECT_URI
    )

    final_state_dir = (
        state_dir
        or os.getenv("TODO_SYNC_STATE_DIR")
        or fb.get("state_dir")
        or DEFAULT_STATE_DIR
    )
    final_state_dir = str(Path(final_state_dir).expanduser())

    final_strategy = (
        conflict_strategy
        or os.getenv("TODO_SYNC_CONFLICT_STRATEGY")
        or fb.get("conflict_strategy")
        or "interactive"
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("TODO_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    debounce = _get_float_env("TODO_SYNC_DEBOUNCE_SECONDS", 0.1, 300)
    if debounce is None:
        debounce = float(fb.get("debounce_seconds", 3.0))

    tolerance = int(fb.get("tolerance_ms", 2000))
    interval = float(fb.get("connectivity_interval", 15.0))
    connectivity_url = fb.get("connectivity_url") or DEFAULT_CONNECTIVITY_URL

    config = Config(
        app_key=final_app_key,
        redirect_uri=final_redirect,
        state_dir=final_state_dir,
        debounce_seconds=debounce,
        tolerance_ms=tolerance,
        conflict_strategy=final_strategy,
        connectivity_url=connectivity_url,
        connectivity_interval=interval,
        debug=final_debug,
    )

    validate_config(config)

    return config
