"""Tests for the MQTT publisher."""
from __future__ import annotations

from unittest.mock import Mock, patch

import paho.mqtt.client as mqtt
import pytest

from hostscope.config import MqttConfig
from hostscope.mqtt_client import MqttPublisher


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        host="broker.local",
        port=8883,
        keepalive=30,
        base_topic="hostscope/box",
        client_id="hostscope-box",
        username="user",
        password="secret",
        qos=1,
        retain=True,
        tls_enabled=True,
        ca_cert="/etc/ssl/ca.pem",
    )


@pytest.fixture
def client():
    with patch("hostscope.mqtt_client.mqtt.Client") as client_cls:
        instance = client_cls.return_value
        instance.publish.return_value = Mock(rc=mqtt.MQTT_ERR_SUCCESS)
        yield instance


def test_setup(mqtt_config, client):
    MqttPublisher(mqtt_config)
    client.username_pw_set.assert_called_once_with("user", "secret")
    assert client.tls_set.call_args.kwargs["ca_certs"] == "/etc/ssl/ca.pem"
    client.will_set.assert_called_once_with(
        "hostscope/box/status", payload="offline", qos=1, retain=True
    )


def test_connect_announces_online(mqtt_config, client):
    publisher = MqttPublisher(mqtt_config)
    publisher.connect()
    client.connect.assert_called_once_with("broker.local", 8883, keepalive=30)
    client.loop_start.assert_called_once()

    publisher._on_connect(client, None, {}, 0, None)
    assert publisher.connected is True
    client.publish.assert_called_with(
        "hostscope/box/status", payload="online", qos=1, retain=True
    )


def test_refused_connection(mqtt_config, client):
    publisher = MqttPublisher(mqtt_config)
    publisher._on_connect(client, None, {}, 5, None)
    assert publisher.connected is False
    client.publish.assert_not_called()


def test_unreachable_broker_keeps_loop_running(mqtt_config, client):
    client.connect.side_effect = ConnectionRefusedError("refused")
    publisher = MqttPublisher(mqtt_config)
    publisher.connect()
    client.loop_start.assert_called_once()
    assert publisher.connected is False


def test_publish_report(mqtt_config, client):
    publisher = MqttPublisher(mqtt_config)
    assert publisher.publish('{"ts": "now"}') is True
    client.publish.assert_called_once_with(
        "hostscope/box/report", payload='{"ts": "now"}', qos=1, retain=True
    )


def test_publish_failure(mqtt_config, client):
    client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_NO_CONN)
    publisher = MqttPublisher(mqtt_config)
    assert publisher.publish("{}") is False
    assert publisher.publish_status("sleeping") is False


def test_disconnect_marks_offline(mqtt_config, client):
    publisher = MqttPublisher(mqtt_config)
    publisher._on_connect(client, None, {}, 0, None)
    publisher.disconnect()
    client.publish.assert_called_with(
        "hostscope/box/status", payload="offline", qos=1, retain=True
    )
    client.loop_stop.assert_called_once()
    client.disconnect.assert_called_once()

    publisher._on_disconnect(client, None, {}, 0, None)
    assert publisher.connected is False
