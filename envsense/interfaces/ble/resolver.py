"""Locate the Environmental Sensing characteristics in a discovered GATT tree."""

from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional

from bleak.uuids import normalize_uuid_str
from tabulate import tabulate

from envsense.interfaces.ble.constants import ESS_SERVICE_UUID, logger
from envsense.interfaces.ble.store import SensorKind

__all__ = [
    "HandleMap",
    "ResolvedCharacteristic",
    "format_services",
    "resolve_characteristics",
]


class ResolvedCharacteristic(NamedTuple):
    """A sensor characteristic located during discovery."""

    kind: SensorKind
    handle: int
    uuid: str


class HandleMap:
    """Mapping from sensor kind to value handle for a single connection.

    Handles are connection-scoped; a new map is built on every discovery and
    dropped with the connection.
    """

    def __init__(self, entries: Iterable[ResolvedCharacteristic] = ()):
        self._by_kind: Dict[SensorKind, ResolvedCharacteristic] = {}
        self._by_handle: Dict[int, ResolvedCharacteristic] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: ResolvedCharacteristic) -> None:
        if entry.kind in self._by_kind:
            logger.debug(
                "Duplicate %s characteristic at handle 0x%04x; keeping 0x%04x",
                entry.kind.value,
                entry.handle,
                self._by_kind[entry.kind].handle,
            )
            return
        self._by_kind[entry.kind] = entry
        self._by_handle[entry.handle] = entry

    def handle_for(self, kind: SensorKind) -> Optional[int]:
        entry = self._by_kind.get(kind)
        return entry.handle if entry else None

    def by_handle(self, handle: int) -> Optional[ResolvedCharacteristic]:
        return self._by_handle.get(handle)

    def clear(self) -> None:
        self._by_kind.clear()
        self._by_handle.clear()

    def __iter__(self) -> Iterator[ResolvedCharacteristic]:
        return iter(list(self._by_kind.values()))

    def __len__(self) -> int:
        return len(self._by_kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._by_kind

    def __repr__(self) -> str:
        items = ", ".join(
            f"{entry.kind.value}=0x{entry.handle:04x}" for entry in self
        )
        return f"HandleMap({items})"


def _same_uuid(candidate: Any, target: str) -> bool:
    try:
        return normalize_uuid_str(str(candidate)) == target
    except ValueError:
        return False


def resolve_characteristics(
    services: Optional[Iterable[Any]], service_uuid: str = ESS_SERVICE_UUID
) -> HandleMap:
    """
    Build a HandleMap from a discovered service collection.

    Scans top-level services for `service_uuid` and records the handle of every
    temperature, pressure and humidity characteristic found in it. Unknown
    characteristics are skipped. A missing service yields an empty map.

    Parameters:
        services: Iterable of bleak-style service objects (``uuid`` and ``characteristics``).
        service_uuid (str): Target service UUID in normalized 128-bit form.

    Returns:
        HandleMap: Possibly empty mapping of resolved characteristics.
    """
    handle_map = HandleMap()
    for service in services or ():
        if not _same_uuid(getattr(service, "uuid", ""), service_uuid):
            continue
        logger.info("Environmental sensing service found")
        for characteristic in getattr(service, "characteristics", ()):
            kind = SensorKind.from_uuid(getattr(characteristic, "uuid", ""))
            if kind is None:
                continue
            handle_map.add(
                ResolvedCharacteristic(kind, characteristic.handle, kind.uuid)
            )
        break
    else:
        logger.info("Environmental sensing service not present on peripheral")
    return handle_map


def format_services(services: Optional[Iterable[Any]]) -> str:
    """Render the discovered GATT tree as a plain-text table."""
    rows: List[List[Any]] = []
    for service in services or ():
        rows.append(["service", f"0x{getattr(service, 'handle', 0):04x}", service.uuid, ""])
        for characteristic in getattr(service, "characteristics", ()):
            properties = ",".join(getattr(characteristic, "properties", ()) or ())
            rows.append(
                [
                    "  charac",
                    f"0x{characteristic.handle:04x}",
                    characteristic.uuid,
                    properties,
                ]
            )
            for descriptor in getattr(characteristic, "descriptors", ()) or ():
                rows.append(
                    ["    descr", f"0x{descriptor.handle:04x}", descriptor.uuid, ""]
                )
    return tabulate(rows, headers=["type", "handle", "uuid", "properties"])
