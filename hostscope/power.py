from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Callable, Sequence

from hostscope.models import CapacityUnits

UNKNOWN = "unknown"

# Time remaining below this is the "charging" sentinel; between it and zero is "unknown".
CHARGING_SENTINEL = -2.0
UNKNOWN_SENTINEL = -1.0


@dataclass(frozen=True)
class PowerSourceAttributes:
    name: str
    device_name: str = UNKNOWN
    remaining_capacity_percent: float = 1.0
    time_remaining_estimated: float = UNKNOWN_SENTINEL
    time_remaining_instant: float = UNKNOWN_SENTINEL
    power_usage_rate: float = 0.0
    voltage: float = -1.0
    amperage: float = 0.0
    power_on_line: bool = False
    charging: bool = False
    discharging: bool = False
    capacity_units: CapacityUnits = CapacityUnits.RELATIVE
    current_capacity: int = 0
    max_capacity: int = 1
    design_capacity: int = 1
    cycle_count: int = -1
    chemistry: str = UNKNOWN
    manufacture_date: date | None = None
    manufacturer: str = UNKNOWN
    serial_number: str = UNKNOWN
    temperature: float = 0.0


def format_time_remaining(seconds: float) -> str:
    """Render a time-remaining figure, decoding the negative sentinels.

    ``-2.0`` is "Charging", ``-0.5`` is "Unknown", ``125`` is "2:05" and
    ``7500`` is "2:05:00".
    """
    if seconds < -1.5:
        return "Charging"
    if seconds < 0:
        return "Unknown"
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class PowerSource:
    """Snapshot of a battery or UPS, matched by name when refreshed."""

    def __init__(
        self,
        attributes: PowerSourceAttributes,
        enumerate_sources: Callable[[], Sequence[PowerSource]],
    ) -> None:
        self._attributes = attributes
        self._enumerate_sources = enumerate_sources
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def attributes(self) -> PowerSourceAttributes:
        return self._attributes

    @property
    def name(self) -> str:
        return self._attributes.name

    @property
    def device_name(self) -> str:
        return self._attributes.device_name

    @property
    def remaining_capacity_percent(self) -> float:
        return self._attributes.remaining_capacity_percent

    @property
    def time_remaining_estimated(self) -> float:
        return self._attributes.time_remaining_estimated

    @property
    def time_remaining_instant(self) -> float:
        return self._attributes.time_remaining_instant

    @property
    def power_usage_rate(self) -> float:
        return self._attributes.power_usage_rate

    @property
    def voltage(self) -> float:
        return self._attributes.voltage

    @property
    def amperage(self) -> float:
        return self._attributes.amperage

    @property
    def power_on_line(self) -> bool:
        return self._attributes.power_on_line

    @property
    def charging(self) -> bool:
        return self._attributes.charging

    @property
    def discharging(self) -> bool:
        return self._attributes.discharging

    @property
    def capacity_units(self) -> CapacityUnits:
        return self._attributes.capacity_units

    @property
    def current_capacity(self) -> int:
        return self._attributes.current_capacity

    @property
    def max_capacity(self) -> int:
        return self._attributes.max_capacity

    @property
    def design_capacity(self) -> int:
        return self._attributes.design_capacity

    @property
    def cycle_count(self) -> int:
        return self._attributes.cycle_count

    @property
    def chemistry(self) -> str:
        return self._attributes.chemistry

    @property
    def manufacture_date(self) -> date | None:
        return self._attributes.manufacture_date

    @property
    def manufacturer(self) -> str:
        return self._attributes.manufacturer

    @property
    def serial_number(self) -> str:
        return self._attributes.serial_number

    @property
    def temperature(self) -> float:
        return self._attributes.temperature

    def update_attributes(self) -> bool:
        """Re-enumerate sources and take over the one with this name.

        Returns False and leaves every field alone when no source matches,
        e.g. the battery was removed.
        """
        for source in self._enumerate_sources():
            if source.name == self.name:
                self._attributes = source.attributes
                return True
        self.logger.debug("Power source %s not found on refresh.", self.name)
        return False

    def to_dict(self) -> dict[str, object]:
        attrs = self._attributes
        return {
            "name": attrs.name,
            "device_name": attrs.device_name,
            "remaining_capacity_pct": round(attrs.remaining_capacity_percent * 100, 1),
            "time_remaining_estimated_s": attrs.time_remaining_estimated,
            "time_remaining_instant_s": attrs.time_remaining_instant,
            "time_remaining": format_time_remaining(attrs.time_remaining_estimated),
            "power_usage_rate_mw": attrs.power_usage_rate,
            "voltage_v": attrs.voltage,
            "amperage_ma": attrs.amperage,
            "power_on_line": attrs.power_on_line,
            "charging": attrs.charging,
            "discharging": attrs.discharging,
            "capacity_units": attrs.capacity_units.value,
            "current_capacity": attrs.current_capacity,
            "max_capacity": attrs.max_capacity,
            "design_capacity": attrs.design_capacity,
            "cycle_count": attrs.cycle_count,
            "chemistry": attrs.chemistry,
            "manufacture_date": (
                attrs.manufacture_date.isoformat() if attrs.manufacture_date else None
            ),
            "manufacturer": attrs.manufacturer,
            "serial_number": attrs.serial_number,
            "temperature_c": attrs.temperature,
        }

    def __str__(self) -> str:
        attrs = self._attributes
        manufacture_date = (
            attrs.manufacture_date.isoformat() if attrs.manufacture_date else "Unknown"
        )
        temperature = f"{attrs.temperature}°C" if attrs.temperature > 0 else "Unknown"
        return (
            f"Name: {attrs.name}, Device Name: {attrs.device_name}\n"
            f"RemainingCapacityPercent: {attrs.remaining_capacity_percent * 100:.1f}%, "
            f"Time Remaining: {format_time_remaining(attrs.time_remaining_estimated)}, "
            f"Time Remaining Instant: {format_time_remaining(attrs.time_remaining_instant)}\n"
            f"Power Usage Rate: {attrs.power_usage_rate}mW, "
            f"Voltage: {attrs.voltage}V, Amperage: {attrs.amperage}mA\n"
            f"Power OnLine: {attrs.power_on_line}, Charging: {attrs.charging}, "
            f"Discharging: {attrs.discharging}\n"
            f"Capacity Units: {attrs.capacity_units.value}, "
            f"Current Capacity: {attrs.current_capacity}, "
            f"Max Capacity: {attrs.max_capacity}, "
            f"Design Capacity: {attrs.design_capacity}\n"
            f"Cycle Count: {attrs.cycle_count}, Chemistry: {attrs.chemistry}, "
            f"Manufacture Date: {manufacture_date}, Manufacturer: {attrs.manufacturer}\n"
            f"SerialNumber: {attrs.serial_number}, Temperature: {temperature}"
        )
