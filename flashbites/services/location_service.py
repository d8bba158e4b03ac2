from typing import Optional, Tuple
from flask import current_app
from geopy.geocoders import Nominatim
from geopy.exc import GeopyError


class LocationService:
    def __init__(self, geolocator=None):
        self._geolocator = geolocator

    @property
    def geolocator(self):
        if self._geolocator is None:
            self._geolocator = Nominatim(user_agent=current_app.config.get('GEOCODER_USER_AGENT', 'flashbites_app'))
        return self._geolocator

    def geocode_address(self, address: str) -> Optional[Tuple[float, float]]:
        """Convert address to coordinates"""
        if not current_app.config.get('GEOCODING_ENABLED', True):
            return None
        try:
            location = self.geolocator.geocode(address, timeout=10)
            if location:
                return (location.latitude, location.longitude)
        except GeopyError as e:
            current_app.logger.error(f"Geocoding error: {e}")

        return None

    def reverse_geocode(self, lat: float, lng: float) -> Optional[str]:
        """Convert coordinates to address"""
        if not current_app.config.get('GEOCODING_ENABLED', True):
            return None
        try:
            location = self.geolocator.reverse((lat, lng), timeout=10)
            if location:
                return location.address
        except GeopyError as e:
            current_app.logger.error(f"Reverse geocoding error: {e}")

        return None
