"""
Aircraft operating limits

Each aircraft may have a stored limit profile. Aircraft without one, or with
gaps in it, are evaluated against the built-in default profile.
"""

import logging
from typing import Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ThresholdProfile(BaseModel):
    """Weather limits a specific aircraft tolerates"""
    aircraft_id: str
    max_wind_speed: float  # m/s
    max_wind_shear: float  # m/s
    min_visibility: float  # km
    max_precipitation: float  # mm/h
    min_cloud_base: Optional[int] = None  # m
    temp_min: float  # °C
    temp_max: float  # °C
    max_humidity: float  # %
    max_turbulence_level: str = "moderate"

    model_config = {"frozen": True}


DEFAULT_PROFILE = ThresholdProfile(
    aircraft_id="default",
    max_wind_speed=12.0,
    max_wind_shear=5.0,
    min_visibility=1.5,
    max_precipitation=5.0,
    temp_min=-10.0,
    temp_max=40.0,
    max_humidity=90.0,
    max_turbulence_level="moderate",
)


class ThresholdStore(Protocol):
    def get_by_aircraft(self, aircraft_id: str) -> Optional[dict]:
        """Return the stored limit columns for an aircraft, or None"""
        ...


def merge_with_default(aircraft_id: str, stored: dict) -> ThresholdProfile:
    """Fill every missing stored limit from the default profile"""
    values = DEFAULT_PROFILE.model_dump()
    values.update({k: v for k, v in stored.items() if v is not None and k in values})
    values["aircraft_id"] = aircraft_id
    return ThresholdProfile(**values)


class ThresholdProvider:
    """Resolves the limit profile for an aircraft; never fails"""

    def __init__(self, store: Optional[ThresholdStore] = None):
        self.store = store

    def get_profile(self, aircraft_id: Optional[str]) -> ThresholdProfile:
        if not aircraft_id or self.store is None:
            return DEFAULT_PROFILE.model_copy(update={"aircraft_id": aircraft_id or DEFAULT_PROFILE.aircraft_id})

        try:
            stored = self.store.get_by_aircraft(aircraft_id)
        except Exception as e:
            logger.error(f"Failed to read limits for {aircraft_id}, using defaults: {e}")
            stored = None

        if stored is None:
            logger.debug(f"No limits configured for {aircraft_id}, using default profile")
            return DEFAULT_PROFILE.model_copy(update={"aircraft_id": aircraft_id})

        return merge_with_default(aircraft_id, stored)
