"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .backend.connection import (
    DEFAULT_BASE_URL,
    DEFAULT_CHAT_PATH,
    DEFAULT_STREAM_TIMEOUT,
    DEFAULT_TIMEOUT,
    DEFAULT_TIMEZONE,
    BackendSettings,
    Credentials,
)
from .backend.message import ReasoningEffort, RequestConfig
from .registry import DEFAULT_IDLE_TTL, DEFAULT_MAX_SESSIONS

logger = logging.getLogger("t3proxy")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_MODEL_CREATED = 1677610602

COOKIES_ENV_VARS = ("T3_COOKIES", "COOKIES")
CONVEX_SESSION_ENV_VARS = ("T3_CONVEX_SESSION_ID", "CONVEX_SESSION_ID")

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """Resolve the env file path for a config file."""
    if env_path:
        return resolve_config_path(env_path)
    stem = config_path.stem
    if stem.startswith("config_"):
        suffix = stem[len("config_"):]
        return config_path.with_name(f".env_{suffix}")
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to T3PROXY_CONFIG, or
              configs/config_default.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary. When no path was requested and the
        default file is absent, an empty dictionary.
    """
    explicit = path is not None or bool(os.getenv("T3PROXY_CONFIG"))
    if path is None:
        path = os.getenv("T3PROXY_CONFIG") or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)

    logger.info(f"Loading configuration from {config_path}")

    if not config_path.exists():
        if not explicit:
            logger.warning(f"Default config file not found: {config_path}; using built-in defaults")
            return {}
        logger.error(f"Config file not found: {config_path}")
        raise RuntimeError(f"Config file not found: {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info(f"Loading environment variables from {env_file}")
            env_values = load_env_values(env_file)

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return data


def _substitute_env_vars(
    obj: Any, env_values: Mapping[str, str] | None = None
) -> Any:
    """Recursively substitute environment variables in configuration values.

    Supports two formats:
    - ${VAR_NAME}: Braced format
    - $VAR_NAME: Simple format

    Unset variables keep their literal placeholder and log a warning.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG ERROR: Environment variable '${var_name}' is not set! "
                    f"Check your .env file or export it in your shell. "
                    f"The literal placeholder will be used."
                )
                return match.group(0)
            return value

        return _ENV_PATTERN.sub(replace_var, obj)
    return obj


@dataclass(frozen=True)
class ModelAlias:
    """One entry of the model catalog: caller-visible name -> backend model."""

    name: str
    backend_model: str
    created: int = DEFAULT_MODEL_CREATED


@dataclass(frozen=True)
class ProxySettings:
    """Immutable, fully resolved proxy configuration."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    backend: BackendSettings = field(default_factory=BackendSettings)
    credentials: Optional[Credentials] = None
    request_defaults: RequestConfig = field(default_factory=RequestConfig)
    max_sessions: int = DEFAULT_MAX_SESSIONS
    idle_ttl: float = DEFAULT_IDLE_TTL
    models: tuple[ModelAlias, ...] = ()

    @property
    def model_aliases(self) -> dict[str, str]:
        return {model.name: model.backend_model for model in self.models}


def _section(config: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    current: Any = config
    for key in keys:
        current = current.get(key) if isinstance(current, Mapping) else None
    return current if isinstance(current, Mapping) else {}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_float(value: Any, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r; using %s", name, value, default)
        return default
    if result <= 0:
        logger.warning("%s must be positive; using %s", name, default)
        return default
    return result


def _first_env(env: Mapping[str, str], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


def _clean_credential(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    # An unresolved ${VAR} placeholder is not a credential
    if not stripped or _ENV_PATTERN.fullmatch(stripped):
        return None
    return stripped


def _parse_credentials(config: Mapping[str, Any], env: Mapping[str, str]) -> Optional[Credentials]:
    section = _section(config, "credentials")
    cookies = _clean_credential(_first_env(env, COOKIES_ENV_VARS) or section.get("cookies"))
    convex_session_id = _clean_credential(
        _first_env(env, CONVEX_SESSION_ENV_VARS) or section.get("convex_session_id")
    )
    if cookies and convex_session_id:
        return Credentials(cookies=cookies, convex_session_id=convex_session_id)
    if cookies or convex_session_id:
        logger.warning("Only one of cookies / convex_session_id is configured; ignoring both")
    return None


def _parse_models(entries: Any) -> tuple[ModelAlias, ...]:
    models: list[ModelAlias] = []
    if not isinstance(entries, list):
        return ()
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        name = str(entry.get("model_name") or "").strip()
        if not name:
            logger.warning("Skipping model entry without model_name: %r", entry)
            continue
        params = entry.get("model_params") or {}
        backend_model = str(params.get("model") or name).strip()
        try:
            created = int(params.get("created", DEFAULT_MODEL_CREATED))
        except (TypeError, ValueError):
            created = DEFAULT_MODEL_CREATED
        models.append(ModelAlias(name=name, backend_model=backend_model, created=created))
    return tuple(models)


def build_settings(config: Mapping[str, Any], env: Mapping[str, str] | None = None) -> ProxySettings:
    """Resolve a raw config dictionary into ``ProxySettings``.

    Environment variables take priority over the config file for the server
    address, log level and credentials.
    """
    if env is None:
        env = os.environ

    proxy_settings = _section(config, "proxy_settings")
    server_cfg = _section(proxy_settings, "server")
    logging_cfg = _section(proxy_settings, "logging")

    host = env.get("T3PROXY_HOST") or str(server_cfg.get("host", DEFAULT_HOST))
    port_raw = env.get("T3PROXY_PORT") or server_cfg.get("port", DEFAULT_PORT)
    try:
        port = int(port_raw)
    except (TypeError, ValueError):
        logger.warning("Invalid port %r; using %s", port_raw, DEFAULT_PORT)
        port = DEFAULT_PORT

    log_level = str(env.get("T3PROXY_LOG_LEVEL") or logging_cfg.get("level") or "INFO").upper()

    backend_cfg = _section(config, "backend_settings")
    backend = BackendSettings(
        base_url=str(backend_cfg.get("base_url") or DEFAULT_BASE_URL),
        chat_path=str(backend_cfg.get("chat_path") or DEFAULT_CHAT_PATH),
        timeout=_as_float(backend_cfg.get("timeout"), DEFAULT_TIMEOUT, "backend_settings.timeout"),
        stream_timeout=_as_float(
            backend_cfg.get("stream_timeout"), DEFAULT_STREAM_TIMEOUT, "backend_settings.stream_timeout"
        ),
        timezone=str(backend_cfg.get("timezone") or DEFAULT_TIMEZONE),
    )

    effort_raw = backend_cfg.get("reasoning_effort") or ReasoningEffort.MEDIUM.value
    try:
        effort = ReasoningEffort(str(effort_raw).strip().lower())
    except ValueError:
        logger.warning("Invalid reasoning_effort %r; using medium", effort_raw)
        effort = ReasoningEffort.MEDIUM
    request_defaults = RequestConfig(
        reasoning_effort=effort,
        include_search=_parse_bool(backend_cfg.get("include_search", False)),
    )

    registry_cfg = _section(config, "session_registry")
    try:
        max_sessions = max(1, int(registry_cfg.get("max_sessions", DEFAULT_MAX_SESSIONS)))
    except (TypeError, ValueError):
        max_sessions = DEFAULT_MAX_SESSIONS
    try:
        idle_ttl = max(0.0, float(registry_cfg.get("idle_ttl", DEFAULT_IDLE_TTL)))
    except (TypeError, ValueError):
        idle_ttl = DEFAULT_IDLE_TTL

    return ProxySettings(
        host=host,
        port=port,
        log_level=log_level,
        backend=backend,
        credentials=_parse_credentials(config, env),
        request_defaults=request_defaults,
        max_sessions=max_sessions,
        idle_ttl=idle_ttl,
        models=_parse_models(config.get("model_list")),
    )


def load_settings(path: str | None = None, env_path: str | None = None) -> ProxySettings:
    """Load the YAML config and resolve it against the environment.

    Values from the config's .env file are visible to credential and server
    lookups as well as to ``${VAR}`` substitution; the process environment
    wins over the .env file.
    """
    config = load_config(path, env_path=env_path)
    env: dict[str, str] = {}
    config_path = resolve_config_path(path or os.getenv("T3PROXY_CONFIG") or DEFAULT_CONFIG_PATH)
    env.update(load_env_values(resolve_env_path(config_path, env_path)))
    env.update(os.environ)
    return build_settings(config, env)
