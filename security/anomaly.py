"""
Impossible-travel heuristic.

Compares a successful login's coordinates with the account's previous
located success and flags implied speeds no traveller could reach. VPNs and
proxies produce false positives, so a flag is informational: it is audited
and sent to the account holder, and the login proceeds.
"""
import math
from dataclasses import dataclass, field

from flask import current_app

from models.db import utcnow
from security.ledger import last_successful_attempt

EARTH_RADIUS_KM = 6371.0


@dataclass
class AnomalyResult:
    suspicious: bool
    reason: str
    details: dict = field(default=None)

    def to_dict(self):
        return {"suspicious": self.suspicious, "reason": self.reason, "details": self.details}


def haversine_km(lat1, lon1, lat2, lon2) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def evaluate_travel(distance_km, elapsed_seconds, max_speed_kmh, min_distance_km, min_resolution_seconds):
    """
    Returns (suspicious, required_speed_kmh). Below the minimum time
    resolution the speed is unbounded for any distance worth flagging.
    """
    if distance_km < min_distance_km:
        return False, 0.0
    if elapsed_seconds < min_resolution_seconds:
        return True, math.inf
    speed = distance_km / (elapsed_seconds / 3600.0)
    return speed > max_speed_kmh, speed


def check_impossible_travel(email, latitude, longitude, now=None) -> AnomalyResult:
    if latitude is None or longitude is None:
        return AnomalyResult(False, "No location data available")

    cfg = current_app.config
    now = now or utcnow()

    previous = last_successful_attempt(email, before=now)
    if previous is None:
        return AnomalyResult(False, "No previous login location to compare")

    elapsed_seconds = max((now - previous.created_at).total_seconds(), 0.0)
    if elapsed_seconds > cfg.get("IMPOSSIBLE_TRAVEL_WINDOW_HOURS", 24) * 3600:
        return AnomalyResult(False, "Sufficient time has passed for travel")

    distance_km = haversine_km(previous.latitude, previous.longitude, latitude, longitude)
    suspicious, speed = evaluate_travel(
        distance_km,
        elapsed_seconds,
        cfg.get("IMPOSSIBLE_TRAVEL_MAX_SPEED_KMH", 1000),
        cfg.get("IMPOSSIBLE_TRAVEL_MIN_DISTANCE_KM", 10),
        cfg.get("IMPOSSIBLE_TRAVEL_MIN_RESOLUTION_SECONDS", 30),
    )
    if not suspicious:
        return AnomalyResult(False, "Travel speed within acceptable limits")

    return AnomalyResult(
        True,
        "Impossible travel detected",
        {
            "last_location": previous.location_label,
            "distance_km": round(distance_km, 2),
            "time_hours": round(elapsed_seconds / 3600.0, 2),
            "required_speed_kmh": round(speed, 2) if math.isfinite(speed) else None,
            "last_login_at": previous.created_at.isoformat(),
        },
    )
