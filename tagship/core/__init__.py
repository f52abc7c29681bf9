"""Core types shared by every layer: results, exit codes, config, secrets."""

from .config import Config, ConfigError, load_config, load_config_or_default
from .errors import ErrorCode
from .result import Err, Ok, Result
from .secrets import RegistryCredentials, Secrets, load_secrets

__all__ = [
    # config
    "Config",
    "ConfigError",
    "load_config",
    "load_config_or_default",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
    # secrets
    "RegistryCredentials",
    "Secrets",
    "load_secrets",
]
