"""
Logging utilities for GoCart

Provides centralized logging configuration: stdlib logging through dictConfig
(optionally loaded from a YAML file) with structlog layered on top.
"""

import copy
import logging
import logging.config
from typing import Optional, Dict, Any
from pathlib import Path

import structlog
import yaml

# Default logging configuration
DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(message)s',
        },
        'detailed': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'INFO',
            'formatter': 'default',
            'stream': 'ext://sys.stdout'
        }
    },
    'root': {
        'level': 'INFO',
        'handlers': ['console'],
    },
    'loggers': {
        'gocart': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'httpx': {
            'level': 'WARNING',
        },
    }
}


def load_logging_config(config_path: Optional[str]) -> Dict[str, Any]:
    """
    Load a dictConfig mapping from a YAML file, falling back to the default

    Args:
        config_path: Path to a .yml/.yaml logging configuration file

    Returns:
        Logging configuration dictionary
    """
    if config_path:
        path = Path(config_path)
        if path.exists() and path.suffix in ('.yml', '.yaml'):
            try:
                with path.open('r') as f:
                    config = yaml.safe_load(f)
                if isinstance(config, dict):
                    return config
                logging.getLogger(__name__).warning(
                    f"Logging config {config_path} is not a mapping, using defaults"
                )
            except (OSError, yaml.YAMLError) as e:
                logging.getLogger(__name__).warning(
                    f"Failed to load logging config from {config_path}: {e}"
                )

    return copy.deepcopy(DEFAULT_LOGGING_CONFIG)


def setup_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
    json_logs: bool = True
) -> None:
    """
    Setup logging configuration

    Args:
        config_path: Path to logging configuration file
        log_level: Override log level for every handler and logger
        json_logs: Render structlog events as JSON instead of console text
    """
    config = load_logging_config(config_path)

    # Override log level if specified
    if log_level:
        log_level = log_level.upper()
        for logger_config in config.get('loggers', {}).values():
            if logger_config.get('handlers'):
                logger_config['level'] = log_level
        for handler_config in config.get('handlers', {}).values():
            handler_config['level'] = log_level
        if 'root' in config:
            config['root']['level'] = log_level

    logging.config.dictConfig(config)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def sanitize_body(body: Any, sensitive_fields: tuple = ('password', 'token', 'refreshToken', 'creditCard', 'cvv')) -> Any:
    """Mask sensitive top-level fields of a JSON body before logging it"""
    if not isinstance(body, dict):
        return body
    sanitized = dict(body)
    for field in sensitive_fields:
        if sanitized.get(field):
            sanitized[field] = '[FILTERED]'
    return sanitized
