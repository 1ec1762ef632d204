"""Geo-IP projection: MaxMind reader, per-IP cache, bounded batch lookups."""

import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor, wait

import geoip2.database
import geoip2.errors

from pnm.models import GeoLocation, MapNode, Node
from pnm.snapshot import TTLCache

logger = logging.getLogger(__name__)

GEO_CACHE_TTL_SECONDS = 24 * 60 * 60
MAX_MAP_NODES = 200
MAP_BATCH_SIZE = 20
GEO_TIMEOUT_SECONDS = 2.0

_IPV4_SHAPE = re.compile(r"(\d{1,3}\.){3}\d{1,3}")


def extract_ip(address: str | None) -> str | None:
    """Pull the IPv4 address out of an ``ip:port`` string.

    Returns:
        The address, or ``None`` if the host part is not IPv4-shaped.
    """
    if not address:
        return None
    host = address.split(":")[0].strip()
    if not _IPV4_SHAPE.fullmatch(host):
        return None
    return host


class GeoIPReader:
    """Wrapper around a MaxMind GeoLite2-City database reader.

    The reader is tolerant of a missing database file: if the path is
    ``None`` or doesn't exist, lookups simply return ``None``.

    Args:
        city_db_path: Path to ``GeoLite2-City.mmdb``, or ``None``.
    """

    def __init__(self, city_db_path: str | None = None) -> None:
        self._city_reader: geoip2.database.Reader | None = None

        if city_db_path:
            try:
                self._city_reader = geoip2.database.Reader(city_db_path)
                logger.debug("Opened GeoLite2-City DB: %s", city_db_path)
            except FileNotFoundError:
                logger.warning(
                    "GeoLite2-City DB not found at %s; map projection disabled",
                    city_db_path,
                )

    @property
    def available(self) -> bool:
        return self._city_reader is not None

    def close(self) -> None:
        """Close the underlying database reader."""
        if self._city_reader:
            self._city_reader.close()

    def lookup(self, ip: str) -> GeoLocation | None:
        """Look up coordinates and place names for an IP address.

        Returns:
            A ``GeoLocation``, or ``None`` if the address is unknown or the
            record lacks coordinates or a country.
        """
        if not self._city_reader:
            return None
        try:
            resp = self._city_reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            logger.debug("City lookup failed for %s", ip)
            return None

        lat = resp.location.latitude
        lng = resp.location.longitude
        country = resp.country.name
        if lat is None or lng is None or not country:
            return None

        return GeoLocation(
            lat=lat,
            lng=lng,
            country=country,
            region=resp.subdivisions.most_specific.name or "Unknown",
            city=resp.city.name or None,
        )


class GeoResolver:
    """Resolves node addresses to locations, caching successful lookups.

    Args:
        reader: An open ``GeoIPReader``.
        cache: Per-IP cache; defaults to a private 24-hour cache.
    """

    def __init__(
        self,
        reader: GeoIPReader,
        cache: TTLCache[str, GeoLocation] | None = None,
    ) -> None:
        self._reader = reader
        self._cache: TTLCache[str, GeoLocation] = (
            cache if cache is not None else TTLCache(GEO_CACHE_TTL_SECONDS)
        )

    def resolve(self, address: str | None) -> GeoLocation | None:
        """Resolve *address* (``ip`` or ``ip:port``).  Never raises."""
        ip = extract_ip(address)
        if ip is None:
            return None

        cached = self._cache.get(ip)
        if cached is not None:
            return cached

        try:
            geo = self._reader.lookup(ip)
        except Exception:
            logger.debug("Geo lookup raised for %s", ip, exc_info=True)
            return None

        if geo is not None:
            self._cache.set(ip, geo)
        return geo


def _to_map_node(node: Node, geo: GeoLocation) -> MapNode:
    return MapNode(
        pubkey=node.pubkey,
        lat=geo.lat,
        lng=geo.lng,
        country=geo.country,
        region=geo.region,
        city=geo.city,
        status=node.status,
        health_score=node.health_score or 0,
        version=node.version,
        last_seen=node.last_seen or None,
    )


def project_map_nodes(
    nodes: list[Node],
    resolver: GeoResolver,
    *,
    max_nodes: int = MAX_MAP_NODES,
    batch_size: int = MAP_BATCH_SIZE,
    timeout: float = GEO_TIMEOUT_SECONDS,
) -> list[MapNode]:
    """Place nodes on the map.

    At most *max_nodes* nodes are resolved, *batch_size* at a time.  Each
    batch gets *timeout* seconds; lookups that fail, return nothing, or
    don't finish in time are dropped without affecting the rest.

    Args:
        nodes: Scored nodes; ``address`` is used, falling back to ``ip``.
        resolver: Resolver to use for each node.
        max_nodes: Cap on the number of nodes considered.
        batch_size: Concurrent lookups per batch.
        timeout: Seconds to wait for each batch.

    Returns:
        Map nodes in input order.
    """
    limited = nodes[:max_nodes]
    results: list[MapNode] = []
    dropped = 0

    size = max(batch_size, 1)
    for start in range(0, len(limited), size):
        batch = limited[start : start + size]
        # Each batch owns its pool; an overrunning lookup never takes a
        # worker from a later batch.
        pool = ThreadPoolExecutor(max_workers=len(batch))
        try:
            futures: list[Future] = [
                pool.submit(resolver.resolve, node.address or node.ip) for node in batch
            ]
            done, _ = wait(futures, timeout=timeout)
        finally:
            # Overrunning lookups are abandoned, not awaited.
            pool.shutdown(wait=False, cancel_futures=True)

        for node, future in zip(batch, futures):
            if future not in done or future.exception() is not None:
                dropped += 1
                continue
            geo = future.result()
            if geo is None:
                dropped += 1
                continue
            results.append(_to_map_node(node, geo))

    logger.debug("Projected %d nodes onto the map (%d dropped)", len(results), dropped)
    return results
