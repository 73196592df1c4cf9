"""Tests for configuration loading, defaults and validation."""

import logging

import pytest
import yaml

from kef_local.config_loader import (
    DEFAULTS,
    TimezoneFormatter,
    get_sample_config,
    load_config,
)


def write_config(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_empty_file_gets_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    config = load_config(str(path))

    assert config == DEFAULTS
    assert config['discovery']['scan_ranges'] is not DEFAULTS['discovery']['scan_ranges']


def test_partial_sections_merged(tmp_path):
    config = load_config(write_config(tmp_path, {
        'speaker': {'host': '192.168.1.100'},
        'live_sync': {'include_position_tracking': True, 'power_on_source': 'wifi'},
    }))

    assert config['speaker'] == {'host': '192.168.1.100', 'port': 80, 'request_timeout': 10}
    assert config['live_sync']['include_position_tracking'] is True
    assert config['live_sync']['power_on_source'] == 'wifi'
    assert config['live_sync']['queue_staleness_seconds'] == 50
    assert config['discovery']['service_type'] == '_airplay._tcp.local.'


def test_sample_config_is_valid(tmp_path):
    config = load_config(write_config(tmp_path, get_sample_config()))
    assert config['discovery']['scan_ranges'] == ['192.168.1']


@pytest.mark.parametrize("data", [
    {'speaker': {'port': 70000}},
    {'speaker': {'port': 'eighty'}},
    {'discovery': {'timeout': 0}},
    {'discovery': {'probe_timeout': -1}},
    {'discovery': {'scan_ranges': ['192.168']}},
    {'live_sync': {'poll_timeout': 'ten'}},
    {'live_sync': {'retry_delay_seconds': -2}},
    {'live_sync': {'power_on_source': 'laserdisc'}},
    {'logging': {'level': 'LOUD'}},
    {'logging': {'timezone': 'Mars/Olympus_Mons'}},
    {'api': 'not a mapping'},
])
def test_invalid_values(tmp_path, data):
    with pytest.raises(ValueError):
        load_config(write_config(tmp_path, data))


def test_out_of_range_poll_timeout_warns(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="kef_local.config_loader"):
        config = load_config(write_config(tmp_path, {'live_sync': {'poll_timeout': 90}}))

    assert config['live_sync']['poll_timeout'] == 90
    assert "clamp" in caplog.text


def test_timezone_formatter():
    formatter = TimezoneFormatter("%(asctime)s %(message)s", "Europe/London")
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    record.created = 1700000000.0

    assert formatter.formatTime(record) == "2023-11-14 22:13:20 GMT"
