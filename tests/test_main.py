"""Tests for the stdin-driven command line host."""
from __future__ import annotations

import io
import logging
import time
from unittest.mock import Mock, call

import paho.mqtt.client as mqtt
import pytest

from vzlogger_mqtt.channel import MeterReading
from vzlogger_mqtt.main import feed_readings, main, parse_reading_line

CONFIG = """\
[mqtt]
enabled = true
host = broker
port = 1883
topic = home/meters

[channel:power1]
uuid = 6836dd20-00d5-11e0-bab1-856ed5f959ae

[channel:energy]
uuid = 9b0a8c10-6a2b-11e0-9d4e-3b9f0a7c1e22
aggmode = sum
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "vzlogger.cfg"
    path.write_text(CONFIG, encoding="utf-8")
    return path


class TestParseReadingLine:
    def test_raw(self):
        assert parse_reading_line("power1 42.5\n") == ("power1", 42.5, False)

    def test_aggregate(self):
        assert parse_reading_line("energy 1200 AGG") == ("energy", 1200.0, True)

    @pytest.mark.parametrize("line", ["", "   \n", "# comment", "  # another"])
    def test_blank_and_comment(self, line):
        assert parse_reading_line(line) is None

    def test_trailing_comment(self):
        assert parse_reading_line("power1 1.5 # kitchen") == ("power1", 1.5, False)

    @pytest.mark.parametrize("line", ["power1", "power1 abc", "power1 1 raw", "a 1 agg extra"])
    def test_invalid(self, line):
        with pytest.raises(ValueError):
            parse_reading_line(line)


def test_feed_readings_skips_bad_lines(power_channel, caplog):
    publish = Mock()
    lines = ["power1 1.0", "unknown 2.0", "power1 oops", "# note", "power1 3.0 agg"]

    with caplog.at_level(logging.WARNING):
        count = feed_readings(lines, {"power1": power_channel}, publish)

    assert count == 2
    assert publish.call_count == 2
    channel, reading, aggregate = publish.call_args_list[0].args
    assert channel is power_channel
    assert isinstance(reading, MeterReading)
    assert reading.value == 1.0
    assert aggregate is False
    assert publish.call_args_list[1].args[2] is True
    assert "unknown channel unknown" in caplog.text
    assert "line 3" in caplog.text


def test_missing_config_exits_with_error(tmp_path):
    assert main(["--config", str(tmp_path / "missing.cfg")]) == 2


def test_dry_run_logs_topics(config_path, monkeypatch, client_factory, caplog):
    monkeypatch.setattr("sys.stdin", io.StringIO("power1 42.5\nenergy 7 agg\npower1 43\n"))

    with caplog.at_level(logging.INFO):
        assert main(["--config", str(config_path), "--dry-run"]) == 0

    client_factory.assert_not_called()
    assert "Would publish home/meters/power1/raw=42.5" in caplog.text
    assert "Would publish home/meters/energy/agg=7.0" in caplog.text
    assert "Would publish home/meters/power1/uuid=6836dd20" in caplog.text
    assert caplog.text.count("home/meters/power1/uuid") == 1


@pytest.mark.threaded
def test_publishes_and_shuts_down(config_path, monkeypatch, client_factory, fake_client):
    def idle_loop(timeout=1.0):
        time.sleep(0.001)
        return mqtt.MQTT_ERR_SUCCESS

    fake_client.loop.side_effect = idle_loop
    monkeypatch.setattr("sys.stdin", io.StringIO("power1 42.5\n"))

    assert main(["--config", str(config_path)]) == 0

    assert call("home/meters/power1/raw", payload="42.5", qos=0, retain=False) in (
        fake_client.publish.call_args_list
    )
    fake_client.disconnect.assert_called_once_with()
