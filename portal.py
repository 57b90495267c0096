#!/usr/bin/env python3
"""
Campus portal core helpers: logging and configuration.

Both the web front end (``portal_web.py``) and ad-hoc scripts call
:func:`setup_logging` and :func:`load_config` before touching the database.
"""

import json
import logging
import os
from typing import Dict

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass


DEFAULT_CONFIG = {
    'database_url': 'sqlite:///campus_portal.db',
    'log_level': 'INFO',
    'secret_key': '',
    'funnel_base_url': 'http://localhost:8000',
    'funnel_timeout': 10,
}

# Environment variable -> config key
ENV_OVERRIDES = {
    'DATABASE_URL': 'database_url',
    'PORTAL_LOG_LEVEL': 'log_level',
    'PORTAL_SECRET_KEY': 'secret_key',
    'FUNNEL_BASE_URL': 'funnel_base_url',
    'FUNNEL_TIMEOUT': 'funnel_timeout',
}


def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root ``campus`` logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('campus')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = setup_logging()


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration from an optional JSON file plus the environment.

    Environment variables take precedence over config file values:
    - DATABASE_URL overrides database_url
    - PORTAL_LOG_LEVEL overrides log_level
    - PORTAL_SECRET_KEY overrides secret_key
    - FUNNEL_BASE_URL overrides funnel_base_url
    - FUNNEL_TIMEOUT overrides funnel_timeout

    A missing or unreadable config file is not an error; the defaults apply.
    """
    config = dict(DEFAULT_CONFIG)
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config.update(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not load %s: %s", config_path, e)

    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config[key] = value

    try:
        config['funnel_timeout'] = int(config['funnel_timeout'])
    except (TypeError, ValueError):
        logger.warning("Invalid funnel_timeout %r, using default", config['funnel_timeout'])
        config['funnel_timeout'] = DEFAULT_CONFIG['funnel_timeout']
    return config
