from .distance import Coordinate, Geofence, distance, within_geofence

__all__ = ["Coordinate", "Geofence", "distance", "within_geofence"]
