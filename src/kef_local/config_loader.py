"""
Configuration loader for the KEF local control server
Loads and validates configuration from YAML files
"""

import copy
import yaml
import logging
from typing import Dict, Any
from pathlib import Path
from datetime import datetime
import pytz

from .discovery.models import CandidateRange
from .speaker.models import Source

logger = logging.getLogger(__name__)

DEFAULTS = {
    'speaker': {
        'host': '',                 # Empty: use the first discovered speaker
        'port': 80,
        'request_timeout': 10
    },
    'discovery': {
        'timeout': 5,
        'stream_timeout': 10,
        'probe_timeout': 0.5,
        'resolve_timeout': 2,
        'service_type': '_airplay._tcp.local.',
        'scan_ranges': []           # e.g. ["192.168.1"]; empty: derive from interfaces
    },
    'live_sync': {
        'enabled': True,
        'poll_timeout': 10,
        'include_position_tracking': False,
        'queue_staleness_seconds': 50,
        'poll_buffer_seconds': 1,
        'retry_delay_seconds': 2,
        'reconnect_delay_seconds': 30,
        'power_on_source': None     # e.g. "wifi" to report powerOn as that source
    },
    'api': {
        'host': '0.0.0.0',
        'port': 8000
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/kef_local.log',
        'console_output': True,
        'timezone': 'UTC'
    }
}

def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ValueError("Configuration root must be a mapping")

        # Apply defaults
        config = _apply_defaults(config)

        # Validate values
        _validate_config(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""
    for section, section_defaults in DEFAULTS.items():
        if config.get(section) is None:
            config[section] = {}
        if not isinstance(config[section], dict):
            raise ValueError(f"Configuration section '{section}' must be a mapping")
        for key, default_value in section_defaults.items():
            if key not in config[section]:
                config[section][key] = copy.deepcopy(default_value)
    return config

def _validate_config(config: Dict) -> None:
    """Validate configuration values"""
    speaker = config['speaker']
    if not isinstance(speaker['port'], int) or not 0 < speaker['port'] < 65536:
        raise ValueError(f"speaker.port must be a valid TCP port, got {speaker['port']!r}")

    discovery = config['discovery']
    for key in ('timeout', 'stream_timeout', 'probe_timeout', 'resolve_timeout'):
        if not isinstance(discovery[key], (int, float)) or discovery[key] <= 0:
            raise ValueError(f"discovery.{key} must be a positive number")
    for prefix in discovery['scan_ranges']:
        try:
            CandidateRange(str(prefix))
        except ValueError:
            raise ValueError(f"discovery.scan_ranges entry is not a /24 prefix: {prefix!r}")

    live_sync = config['live_sync']
    poll_timeout = live_sync['poll_timeout']
    if not isinstance(poll_timeout, (int, float)):
        raise ValueError("live_sync.poll_timeout must be a number")
    if not 1 <= poll_timeout <= 60:
        logger.warning(f"live_sync.poll_timeout {poll_timeout} outside 1-60s - the speaker will clamp it")
    for key in ('queue_staleness_seconds', 'poll_buffer_seconds', 'retry_delay_seconds', 'reconnect_delay_seconds'):
        if not isinstance(live_sync[key], (int, float)) or live_sync[key] < 0:
            raise ValueError(f"live_sync.{key} must be a non-negative number")
    if live_sync['power_on_source'] is not None:
        try:
            Source(live_sync['power_on_source'])
        except ValueError:
            raise ValueError(f"live_sync.power_on_source is not a valid source: {live_sync['power_on_source']!r}")

    level = str(config['logging']['level']).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"logging.level is not a valid level: {level}")
    try:
        pytz.timezone(config['logging']['timezone'])
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"logging.timezone is unknown: {config['logging']['timezone']}")


class TimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in a configured timezone"""

    def __init__(self, fmt=None, timezone_name: str = 'UTC'):
        super().__init__(fmt)
        self.tz = pytz.timezone(timezone_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            # Default format: YYYY-MM-DD HH:MM:SS TZ
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = TimezoneFormatter(log_format, log_config.get('timezone', 'UTC'))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=[]
    )
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logger.info(f"Logging configured: level={level}, console={log_config.get('console_output', True)}, file={log_file}")

def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    sample = copy.deepcopy(DEFAULTS)
    sample['speaker']['host'] = '192.168.1.100'
    sample['discovery']['scan_ranges'] = ['192.168.1']
    return sample
