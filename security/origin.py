"""
Where an attempt came from: network address, approximate geo, device.

Geo comes from the client payload when it sends coordinates, otherwise from
an IP lookup service bounded by GEO_LOOKUP_TIMEOUT_SECONDS. Any lookup
failure leaves the geo fields empty; the login decision never waits on it.
"""
from dataclasses import dataclass

import httpx
from flask import current_app, request

from security.fingerprint import describe_device, device_fingerprint

_PRIVATE_PREFIXES = ("10.", "192.168.", "127.", "169.254.", "::1", "fc", "fd", "localhost", "unknown")


@dataclass
class GeoInfo:
    latitude: float = None
    longitude: float = None
    city: str = None
    country: str = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class OriginContext:
    ip_address: str = None
    user_agent: str = None
    device_fingerprint: str = None
    device_info: str = None
    geo: GeoInfo = None

    def __post_init__(self):
        if self.geo is None:
            self.geo = GeoInfo()

    @property
    def location_label(self) -> str:
        if self.geo.city and self.geo.country:
            return f"{self.geo.city}, {self.geo.country}"
        return self.geo.city or self.geo.country or "Unknown"


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _as_float(value, low, high):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if low <= number <= high else None


def geo_from_payload(data) -> GeoInfo:
    geo = data.get("geo") if isinstance(data, dict) else None
    if not isinstance(geo, dict):
        return GeoInfo()
    city = geo.get("city") if isinstance(geo.get("city"), str) else None
    country = geo.get("country") if isinstance(geo.get("country"), str) else None
    return GeoInfo(
        latitude=_as_float(geo.get("latitude", geo.get("lat")), -90, 90),
        longitude=_as_float(geo.get("longitude", geo.get("lon")), -180, 180),
        city=city[:120] if city else None,
        country=country[:120] if country else None,
    )


def lookup_geo(ip_address) -> GeoInfo:
    """IP geolocation with a hard timeout; returns empty GeoInfo on any failure."""
    if not current_app.config.get("GEO_LOOKUP_ENABLED", False):
        return GeoInfo()
    if not ip_address or ip_address.lower().startswith(_PRIVATE_PREFIXES):
        return GeoInfo()

    url = current_app.config["GEO_LOOKUP_URL"].format(ip=ip_address)
    timeout = current_app.config.get("GEO_LOOKUP_TIMEOUT_SECONDS", 2.0)
    try:
        resp = httpx.get(url, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        current_app.logger.warning("Geo lookup failed for %s: %s", ip_address, exc)
        return GeoInfo()

    if not isinstance(data, dict) or data.get("status") != "success":
        return GeoInfo()
    return GeoInfo(
        latitude=_as_float(data.get("lat"), -90, 90),
        longitude=_as_float(data.get("lon"), -180, 180),
        city=data.get("city"),
        country=data.get("country"),
    )


def origin_from_request(data=None, with_geo=True) -> OriginContext:
    data = data if isinstance(data, dict) else {}
    ip = client_ip()
    user_agent = (request.headers.get("User-Agent") or "")[:255]

    fingerprint = request.headers.get("X-Device-Fingerprint") or data.get("device_fingerprint")
    if not isinstance(fingerprint, str) or not fingerprint.strip():
        fingerprint = device_fingerprint(
            user_agent,
            request.headers.get("Accept-Language"),
            request.headers.get("Sec-CH-UA-Platform"),
        )

    geo = geo_from_payload(data)
    if with_geo and not geo.has_coordinates:
        geo = lookup_geo(ip)

    return OriginContext(
        ip_address=ip,
        user_agent=user_agent or None,
        device_fingerprint=fingerprint.strip()[:128],
        device_info=describe_device(user_agent),
        geo=geo,
    )
