"""Application configuration for the localization tool."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml
from aiolimiter import AsyncLimiter
from dotenv import load_dotenv
from openai import AsyncOpenAI

from ai_localize.errors import ConfigurationError
from ai_localize.logging_config import setup_logger

CONFIG_FILE_ENV_VAR = 'AI_LOCALIZE_CONFIG_FILE'
API_KEY_ENV_VAR = 'OPENAI_API_KEY'


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    project_root: str

    # Model configuration
    model_name: str
    temperature: float
    request_timeout: float

    # Batching and rate limiting
    batch_size: int
    pacing_delay: float
    max_retries: int
    retry_base_delay: float
    requests_per_minute: int

    # Run behaviour
    dry_run: bool
    persist_partial_results: bool


def _compute_project_root() -> str:
    """Compute the project root directory."""
    script_real_path = os.path.realpath(__file__)
    script_dir = os.path.dirname(script_real_path)
    return os.path.abspath(os.path.join(script_dir, os.pardir))


def _dotenv_candidates(project_root: str):
    return os.path.join(project_root, '.env'), os.path.join(project_root, 'docker', '.env')


def _load_dotenv_files(project_root: str) -> Optional[str]:
    """Load the first .env file found in the project root or docker directory."""
    for dotenv_path in _dotenv_candidates(project_root):
        if os.path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            return dotenv_path
    return None


def _load_yaml_config(project_root: str, config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the YAML configuration file.

    The path is taken from ``config_file``, then the AI_LOCALIZE_CONFIG_FILE
    environment variable, then ``config.yaml`` in the project root. A missing
    file means defaults; a malformed file is a configuration error.
    """
    if config_file is None:
        default_config_path = os.path.join(project_root, 'config.yaml')
        config_file = os.environ.get(CONFIG_FILE_ENV_VAR, default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    if not os.path.exists(config_file):
        print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
              file=sys.stderr)
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file '{config_file}': {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read configuration file '{config_file}': {e}") from e

    if loaded_config is None:
        print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
              file=sys.stderr)
        return {}
    if not isinstance(loaded_config, dict):
        raise ConfigurationError(f"Configuration file '{config_file}' must contain a YAML dictionary.")
    return loaded_config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging') or {}
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str, loaded_from: Optional[str]) -> None:
    """Log the status of .env file loading."""
    if loaded_from:
        logger.info("Loaded environment variables from: %s", loaded_from)
    else:
        project_env, docker_env = _dotenv_candidates(project_root)
        logger.debug(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            project_env,
            docker_env
        )


def _positive_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"'{name}' must be an integer, got {value!r}") from e
    if number < 1:
        raise ConfigurationError(f"'{name}' must be at least 1, got {number}")
    return number


def load_app_config(config_file: Optional[str] = None) -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Args:
        config_file: Explicit path of the YAML file, overriding the default lookup.

    Returns:
        AppConfig: The loaded application configuration.

    Raises:
        ConfigurationError: If the file is malformed or a value is invalid.
    """
    project_root = _compute_project_root()

    loaded_from = _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root, config_file)

    logger = _setup_logger_from_config(config)

    _log_dotenv_status(logger, project_root, loaded_from)

    model_name = os.environ.get('AI_LOCALIZE_MODEL_NAME', config.get('model_name', 'gpt-4o'))
    batch_size = _positive_int('batch_size', os.environ.get('AI_LOCALIZE_BATCH_SIZE', config.get('batch_size', 5)))

    return AppConfig(
        project_root=project_root,
        model_name=model_name,
        temperature=float(config.get('temperature', 0.7)),
        request_timeout=float(config.get('request_timeout', 60.0)),
        batch_size=batch_size,
        pacing_delay=float(config.get('pacing_delay', 1.0)),
        max_retries=int(config.get('max_retries', 3)),
        retry_base_delay=float(config.get('retry_base_delay', 1.0)),
        requests_per_minute=_positive_int('requests_per_minute', config.get('requests_per_minute', 60)),
        dry_run=bool(config.get('dry_run', False)),
        persist_partial_results=bool(config.get('persist_partial_results', False))
    )


def resolve_api_key(cli_api_key: Optional[str], environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the API key from the command line, falling back to OPENAI_API_KEY.

    Raises:
        ConfigurationError: If neither is set.
    """
    if cli_api_key:
        return cli_api_key
    environ = os.environ if environ is None else environ
    api_key_from_env = environ.get(API_KEY_ENV_VAR)
    if not api_key_from_env:
        raise ConfigurationError(
            f"OpenAI API key must be provided via --api-key or the {API_KEY_ENV_VAR} environment variable."
        )
    return api_key_from_env


def create_openai_client(api_key: str) -> AsyncOpenAI:
    """Create the OpenAI client, reporting construction failures as configuration errors."""
    logger = logging.getLogger(__name__)
    if not api_key.startswith('sk-'):
        logger.warning("Warning: the OpenAI API key does not start with 'sk-'. This may be invalid.")
    try:
        client = AsyncOpenAI(api_key=api_key)
    except Exception as e:
        raise ConfigurationError(f"Failed to initialize OpenAI client: {e}") from e
    logger.debug("OpenAI client initialized successfully")
    return client


def create_rate_limiter(config: AppConfig) -> AsyncLimiter:
    """Limiter shared by all translation requests of a run."""
    return AsyncLimiter(max_rate=config.requests_per_minute, time_period=60)
