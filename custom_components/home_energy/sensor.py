"""Sensor platform entities for Home Energy resources and heating devices."""

from __future__ import annotations

from datetime import date
import logging
from typing import Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.const import (
    PERCENTAGE,
    UnitOfEnergy,
    UnitOfPressure,
    UnitOfTemperature,
    UnitOfTime,
    UnitOfVolume,
)
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN
from .coordinator import FeatureCoordinator, HistoryCoordinator, HistoryResource
from .domain.features import feature_unit, project_feature
from .runtime import require_runtime

_LOGGER = logging.getLogger(__name__)

# Vendor unit names mapped to Home Assistant units and device classes.
UNIT_MAP: dict[str, tuple[str, SensorDeviceClass | None]] = {
    "kWh": (UnitOfEnergy.KILO_WATT_HOUR, SensorDeviceClass.ENERGY),
    "kilowattHour": (UnitOfEnergy.KILO_WATT_HOUR, SensorDeviceClass.ENERGY),
    "celsius": (UnitOfTemperature.CELSIUS, SensorDeviceClass.TEMPERATURE),
    "kelvin": (UnitOfTemperature.KELVIN, SensorDeviceClass.TEMPERATURE),
    "percent": (PERCENTAGE, None),
    "bar": (UnitOfPressure.BAR, SensorDeviceClass.PRESSURE),
    "cubicMeter": (UnitOfVolume.CUBIC_METERS, SensorDeviceClass.GAS),
    "hour": (UnitOfTime.HOURS, SensorDeviceClass.DURATION),
    "minute": (UnitOfTime.MINUTES, SensorDeviceClass.DURATION),
}


def map_unit(unit: str | None) -> tuple[str | None, SensorDeviceClass | None]:
    """Return the Home Assistant unit and device class of a vendor unit."""

    if unit is None:
        return None, None
    return UNIT_MAP.get(unit, (unit, None))


def _channel_state(value: Any) -> Any:
    """Return a sensor-compatible representation of a projected state."""

    if isinstance(value, bool):
        return "on" if value else "off"
    return value


async def async_setup_entry(hass, entry, async_add_entities):
    """Set up resource and feature sensors for a config entry."""
    runtime = require_runtime(hass, entry.entry_id)
    entities: list[SensorEntity] = []

    history = runtime.history_coordinator
    if history is not None:
        for resource in history.runner.resources:
            entities.append(ResourceReadingSensor(history, entry.entry_id, resource))

    features = runtime.feature_coordinator
    if features is not None:
        for dev_key, device_features in (features.data or {}).items():
            for feature in device_features.values():
                for channel in project_feature(feature):
                    entities.append(
                        FeatureChannelSensor(
                            features, entry.entry_id, dev_key, feature.name, channel
                        )
                    )

    _LOGGER.debug("Adding %d sensor entities", len(entities))
    async_add_entities(entities)


class ResourceReadingSensor(CoordinatorEntity[HistoryCoordinator], SensorEntity):
    """Latest stored half-hourly reading of a metered resource."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: HistoryCoordinator,
        entry_id: str,
        resource: HistoryResource,
    ) -> None:
        """Bind the sensor to one resource."""
        super().__init__(coordinator)
        self._resource = resource
        unit, device_class = map_unit(resource.unit)
        self._attr_unique_id = f"{DOMAIN}_{entry_id}_{resource.resource_id}"
        self._attr_name = resource.name
        self._attr_native_unit_of_measurement = unit
        self._attr_device_class = device_class
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, entry_id)},
            name="Glowmarkt",
            manufacturer="Glowmarkt",
        )

    @property
    def native_value(self) -> float | None:
        """Return the latest stored reading."""
        sample = (self.coordinator.data or {}).get(self._resource.resource_id)
        return sample.value if sample is not None else None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the reading time and statistic id."""
        sample = (self.coordinator.data or {}).get(self._resource.resource_id)
        return {
            "resource_id": self._resource.resource_id,
            "statistic_id": self._resource.statistic_id,
            "last_reading": sample.timestamp.isoformat() if sample else None,
        }


class FeatureChannelSensor(CoordinatorEntity[FeatureCoordinator], SensorEntity):
    """One projected channel of a heating-device feature."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: FeatureCoordinator,
        entry_id: str,
        dev_key: str,
        feature_name: str,
        channel: str,
    ) -> None:
        """Bind the sensor to a device feature channel."""
        super().__init__(coordinator)
        self._dev_key = dev_key
        self._feature_name = feature_name
        self._channel = channel
        self._attr_unique_id = f"{DOMAIN}_{entry_id}_{dev_key}_{feature_name}_{channel}"
        self._attr_name = f"{feature_name} {channel}"
        feature = self._feature()
        unit, device_class = map_unit(
            feature_unit(feature, channel) if feature is not None else None
        )
        self._attr_native_unit_of_measurement = unit
        self._attr_device_class = device_class
        if isinstance(self._raw_state(), date):
            self._attr_device_class = SensorDeviceClass.DATE
        elif unit is not None:
            self._attr_state_class = SensorStateClass.MEASUREMENT
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, dev_key)},
            name=f"ViCare {dev_key.rsplit('/', 1)[-1]}",
            manufacturer="Viessmann",
        )

    def _feature(self):
        """Return the current feature variant, if still reported."""
        device = (self.coordinator.data or {}).get(self._dev_key) or {}
        return device.get(self._feature_name)

    def _raw_state(self) -> Any:
        feature = self._feature()
        if feature is None:
            return None
        return project_feature(feature).get(self._channel)

    @property
    def available(self) -> bool:
        """Return True while the feature is still reported."""
        return super().available and self._feature() is not None

    @property
    def native_value(self) -> Any:
        """Return the projected channel state."""
        return _channel_state(self._raw_state())
