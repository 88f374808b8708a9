"""Distance between an agency and a delivery location."""

import math
from abc import ABC, abstractmethod

EARTH_RADIUS_KM = 6371.0088


class DistanceCalculator(ABC):
    @abstractmethod
    def distance_km(self, origin: tuple[float, float], destination: tuple[float, float]) -> float:
        """Distance in kilometres between two (latitude, longitude) pairs."""
        ...


class HaversineDistance(DistanceCalculator):
    """Great-circle distance. Road routing adapters can replace it."""

    def distance_km(self, origin, destination):
        lat1, lon1 = map(math.radians, origin)
        lat2, lon2 = map(math.radians, destination)
        a = math.sin((lat2 - lat1) / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
        return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))
