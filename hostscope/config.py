from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser

from hostscope.models import ProcessSort


@dataclass(frozen=True)
class MqttConfig:
    host: str
    port: int
    keepalive: int
    base_topic: str
    client_id: str
    username: str | None
    password: str | None
    qos: int
    retain: bool
    tls_enabled: bool
    ca_cert: str | None


@dataclass(frozen=True)
class PublishConfig:
    interval_s: int


@dataclass(frozen=True)
class ProbeConfig:
    process_limit: int
    process_sort: ProcessSort
    include_processes: bool
    include_power: bool
    include_tcp: bool
    include_services: bool
    command_timeout_s: float | None


@dataclass(frozen=True)
class AppConfig:
    mqtt: MqttConfig
    publish: PublishConfig
    probe: ProbeConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_sort(value: str | None) -> ProcessSort:
    if value is None:
        return ProcessSort.CPU
    try:
        return ProcessSort(value.strip().lower())
    except ValueError:
        raise ValueError(
            f"Unknown process_sort {value!r}; expected one of "
            f"{', '.join(s.value for s in ProcessSort)}"
        ) from None


def _get_timeout(value: str | None) -> float | None:
    value = _get_optional(value)
    if value is None:
        return None
    timeout = float(value)
    return timeout if timeout > 0 else None


def default_probe_config() -> ProbeConfig:
    return ProbeConfig(
        process_limit=25,
        process_sort=ProcessSort.CPU,
        include_processes=True,
        include_power=True,
        include_tcp=True,
        include_services=True,
        command_timeout_s=None,
    )


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser()
    read_files = parser.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")

    mqtt_section = parser["mqtt"]
    publish_section = parser["publish"]

    mqtt = MqttConfig(
        host=mqtt_section.get("host", "localhost"),
        port=mqtt_section.getint("port", 1883),
        keepalive=mqtt_section.getint("keepalive", 60),
        base_topic=mqtt_section.get("base_topic", "hostscope"),
        client_id=mqtt_section.get("client_id", "hostscope"),
        username=_get_optional(mqtt_section.get("username")),
        password=_get_optional(mqtt_section.get("password")),
        qos=mqtt_section.getint("qos", 0),
        retain=mqtt_section.getboolean("retain", False),
        tls_enabled=mqtt_section.getboolean("tls", False),
        ca_cert=_get_optional(mqtt_section.get("ca_cert")),
    )

    publish = PublishConfig(
        interval_s=publish_section.getint("interval_s", 60),
    )

    # Use parser.get/getboolean with fallback to handle a missing [probe] section
    probe = ProbeConfig(
        process_limit=parser.getint("probe", "process_limit", fallback=25),
        process_sort=_get_sort(parser.get("probe", "process_sort", fallback=None)),
        include_processes=parser.getboolean("probe", "include_processes", fallback=True),
        include_power=parser.getboolean("probe", "include_power", fallback=True),
        include_tcp=parser.getboolean("probe", "include_tcp", fallback=True),
        include_services=parser.getboolean("probe", "include_services", fallback=True),
        command_timeout_s=_get_timeout(
            parser.get("probe", "command_timeout_s", fallback=None)
        ),
    )

    return AppConfig(mqtt=mqtt, publish=publish, probe=probe)
