"""Request, result and historian value types for genealogy resolution.

All entities are request-scoped. Requests are parsed from the PascalCase
payloads the boundary layer receives (`FromDT`, `ToDT`, `Stations`, ...);
parsing raises `GenealogyValidationError` before any historian call.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from http import HTTPStatus
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    GenealogyValidationError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_utils import (
    clamp_dt,
    parse_ts,
    value_text,
)

_MIN_DT = datetime.min.replace(tzinfo=timezone.utc)
_MAX_DT = datetime.max.replace(tzinfo=timezone.utc)


# =============================================================================
# Historian values
# =============================================================================


class ReadStatus(Enum):
    """Outcome of a single historian read."""

    SUCCESSFUL = "Successful"
    NO_VALUE_FOUND = "NoValueFound"
    TIMEOUT = "Timeout"
    ERROR = "Error"


class Direction(Enum):
    FORWARD = "Forward"
    BACKWARD = "Backward"


@dataclass(frozen=True)
class DataPoint:
    timestamp: datetime
    value: Any

    @property
    def text(self) -> Optional[str]:
        return value_text(self.value)


@dataclass(frozen=True)
class ReadResult:
    """Status plus samples returned by every historian operation."""

    status: ReadStatus
    points: Tuple[DataPoint, ...] = ()
    error: Optional[str] = None

    @property
    def has_points(self) -> bool:
        return self.status == ReadStatus.SUCCESSFUL and len(self.points) > 0

    @property
    def failed(self) -> bool:
        """True for a timed-out or errored read (absorbed as "no data")."""
        return self.status in (ReadStatus.TIMEOUT, ReadStatus.ERROR)

    @classmethod
    def of(cls, points) -> "ReadResult":
        pts = tuple(points)
        if not pts:
            return cls(ReadStatus.NO_VALUE_FOUND)
        return cls(ReadStatus.SUCCESSFUL, pts)


# =============================================================================
# Time ranges
# =============================================================================


class Window(NamedTuple):
    start: datetime
    end: datetime


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def normalized(self) -> "TimeRange":
        if self.start > self.end:
            return TimeRange(self.end, self.start)
        return self

    def clamp(self, dt: datetime) -> datetime:
        rng = self.normalized()
        return clamp_dt(dt, rng.start, rng.end)

    def is_valid(self) -> bool:
        """False when either end is missing, naive or a min/max sentinel."""
        for dt in (self.start, self.end):
            if dt is None or dt.tzinfo is None or dt in (_MIN_DT, _MAX_DT):
                return False
        return True


# =============================================================================
# Channels and occurrences
# =============================================================================


@dataclass(frozen=True)
class SignalIdentity:
    """Fully-qualified reference to one historian channel."""

    interface_group: str
    interface: str
    channel: str

    @classmethod
    def for_channel(cls, settings, channel: str) -> "SignalIdentity":
        return cls(settings.interface_group, settings.interface, channel)

    def attribute_path(self, asset_server: str, asset_database: str) -> str:
        """AF attribute path: \\\\server\\database\\group\\interface|channel."""
        return f"\\\\{asset_server}\\{asset_database}\\{self.interface_group}\\{self.interface}|{self.channel}"

    def __str__(self) -> str:
        return f"{self.interface_group}.{self.interface}.{self.channel}"


@dataclass(frozen=True)
class Occurrence:
    """One instant a channel held a value, with its resolved bounding window."""

    signal: SignalIdentity
    value: str
    timestamp: datetime
    from_dt: datetime
    to_dt: datetime

    @property
    def key(self) -> Tuple[datetime, datetime, SignalIdentity]:
        return (self.from_dt, self.to_dt, self.signal)


class StationStatus(Enum):
    RESOLVED = "Resolved"
    NOT_FOUND = "NotFound"
    FAILED = "Failed"


@dataclass
class StationOutcome:
    """Output of one station task; owned by that task until merged."""

    machine: str
    station: str
    status: StationStatus = StationStatus.NOT_FOUND
    records: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    attempts: int = 0
    failed_attempts: int = 0

    @property
    def all_attempts_failed(self) -> bool:
        return self.attempts > 0 and self.failed_attempts == self.attempts


@dataclass
class GenealogyResult:
    """Aggregate response for one request."""

    from_dt: datetime
    to_dt: datetime
    status: HTTPStatus
    stations: List[Any] = field(default_factory=list)
    outcomes: List[StationOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[StationOutcome]:
        return [o for o in self.outcomes if o.status == StationStatus.FAILED]

    @property
    def error(self) -> Optional[str]:
        messages = [f"{f.machine}/{f.station}: {f.error}" for f in self.failures if f.error]
        return "; ".join(messages) or None


# =============================================================================
# Payload parsing helpers
# =============================================================================


def _require(payload: Dict[str, Any], key: str) -> Any:
    if not isinstance(payload, dict):
        raise GenealogyValidationError(f"Expected an object, got {type(payload).__name__}")
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise GenealogyValidationError(f"Missing required field '{key}'")
    return value


def _parse_dt(payload: Dict[str, Any], key: str) -> datetime:
    raw = _require(payload, key)
    if isinstance(raw, datetime):
        dt = raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    else:
        try:
            dt = parse_ts(str(raw))
        except ValueError as e:
            raise GenealogyValidationError(f"Field '{key}' is not a timestamp: {raw!r}") from e
    if dt in (_MIN_DT, _MAX_DT):
        raise GenealogyValidationError(f"Field '{key}' holds a sentinel timestamp")
    return dt


def _parse_list(payload: Dict[str, Any], key: str) -> List[Any]:
    value = _require(payload, key)
    if not isinstance(value, list) or not value:
        raise GenealogyValidationError(f"Field '{key}' must be a non-empty list")
    return value


def _parse_int(payload: Dict[str, Any], key: str) -> int:
    raw = _require(payload, key)
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise GenealogyValidationError(f"Field '{key}' must be an integer") from e


# =============================================================================
# Descendant genealogy
# =============================================================================


@dataclass
class DescendantStation:
    machine: str
    station: str
    identifier_channel: str
    trigger_channel: str
    auxiliary_channels: Dict[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DescendantStation":
        aux = payload.get("AuxiliaryChannels") or {}
        if not isinstance(aux, dict):
            raise GenealogyValidationError("Field 'AuxiliaryChannels' must be an object")
        return cls(
            machine=str(_require(payload, "Machine")),
            station=str(_require(payload, "Station")),
            identifier_channel=str(_require(payload, "IdentifierChannel")),
            trigger_channel=str(_require(payload, "TriggerChannel")),
            auxiliary_channels={str(k): v for k, v in aux.items()},
        )


@dataclass
class DescendantRequest:
    from_dt: datetime
    to_dt: datetime
    include_rework: bool
    target_identifier: str
    stations: List[DescendantStation]

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DescendantRequest":
        include_rework = payload.get("IncludeRework", False) if isinstance(payload, dict) else False
        if not isinstance(include_rework, bool):
            raise GenealogyValidationError("Field 'IncludeRework' must be a boolean")
        return cls(
            from_dt=_parse_dt(payload, "FromDT"),
            to_dt=_parse_dt(payload, "ToDT"),
            include_rework=include_rework,
            target_identifier=str(_require(payload, "TargetIdentifier")),
            stations=[DescendantStation.from_dict(s) for s in _parse_list(payload, "Stations")],
        )


@dataclass
class DescendantRecord:
    """One station occurrence produced by descendant resolution."""

    machine: str
    station: str
    identifier_channel: str
    trigger_channel: str
    occurrence_dt: datetime
    from_dt: datetime
    to_dt: datetime
    auxiliary_values: Dict[str, Optional[str]] = field(default_factory=dict)


# =============================================================================
# Ascendant genealogy
# =============================================================================


class AscendantStrategy(Enum):
    PART_NUMBER = "part_number"
    SERIAL = "serial"
    GALIA = "galia"


@dataclass
class AscendantStation:
    machine: str
    station: str
    tag_addresses: List[str]
    identifier_channel: str
    trigger_channel: str

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AscendantStation":
        return cls(
            machine=str(_require(payload, "Machine")),
            station=str(_require(payload, "Station")),
            tag_addresses=[str(t) for t in _parse_list(payload, "TagAddresses")],
            identifier_channel=str(_require(payload, "IdentifierChannel")),
            trigger_channel=str(_require(payload, "TriggerChannel")),
        )


@dataclass
class AscendantRequest:
    from_dt: datetime
    to_dt: datetime
    lookup_value: str
    stations: List[AscendantStation]
    strategy: AscendantStrategy = AscendantStrategy.PART_NUMBER

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AscendantRequest":
        raw_strategy = payload.get("Strategy") if isinstance(payload, dict) else None
        try:
            strategy = AscendantStrategy(str(raw_strategy).lower()) if raw_strategy else (
                AscendantStrategy.PART_NUMBER
            )
        except ValueError as e:
            raise GenealogyValidationError(f"Unknown ascendant strategy: {raw_strategy!r}") from e
        return cls(
            from_dt=_parse_dt(payload, "FromDT"),
            to_dt=_parse_dt(payload, "ToDT"),
            lookup_value=str(_require(payload, "LookupValue")),
            stations=[AscendantStation.from_dict(s) for s in _parse_list(payload, "Stations")],
            strategy=strategy,
        )


@dataclass
class IdentifierRecord:
    value: str
    created_at: datetime
    nameplate: str = ""


@dataclass
class AscendantStationResult:
    machine: str
    station: str
    identifier_channel: str
    trigger_channel: str
    from_dt: Optional[datetime] = None
    to_dt: Optional[datetime] = None
    occurrences: List[Occurrence] = field(default_factory=list)
    identifiers: List[IdentifierRecord] = field(default_factory=list)


# =============================================================================
# Identifiers at time
# =============================================================================


@dataclass
class SnapshotStation:
    machine: str
    station: str
    from_dt: datetime
    to_dt: datetime
    identifier_channel: str
    trigger_channel: str
    auxiliary_channels: Dict[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SnapshotStation":
        aux = payload.get("AuxiliaryChannels") or {}
        if not isinstance(aux, dict):
            raise GenealogyValidationError("Field 'AuxiliaryChannels' must be an object")
        return cls(
            machine=str(_require(payload, "Machine")),
            station=str(_require(payload, "Station")),
            from_dt=_parse_dt(payload, "FromDT"),
            to_dt=_parse_dt(payload, "ToDT"),
            identifier_channel=str(_require(payload, "IdentifierChannel")),
            trigger_channel=str(_require(payload, "TriggerChannel")),
            auxiliary_channels={str(k): v for k, v in aux.items()},
        )


def parse_snapshot_request(payload: Any) -> List[SnapshotStation]:
    stations = payload.get("Stations") if isinstance(payload, dict) else payload
    if not isinstance(stations, list) or not stations:
        raise GenealogyValidationError("Expected a non-empty list of stations")
    return [SnapshotStation.from_dict(s) for s in stations]


@dataclass
class SnapshotEntry:
    value: str
    from_dt: datetime
    to_dt: datetime
    auxiliary_values: Dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class SnapshotStationResult:
    machine: str
    station: str
    from_dt: datetime
    to_dt: datetime
    entries: List[SnapshotEntry] = field(default_factory=list)


# =============================================================================
# Identifier lookup and reliability
# =============================================================================


@dataclass
class LookupLine:
    line_group_seq: int
    line_seq: int
    machine_stage_id: int
    channel: str
    is_found: bool = False

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "LookupLine":
        return cls(
            line_group_seq=_parse_int(payload, "LineGroupSeq"),
            line_seq=_parse_int(payload, "LineSeq"),
            machine_stage_id=_parse_int(payload, "MachineStageId"),
            channel=str(_require(payload, "Channel")),
        )


@dataclass
class LookupRequest:
    identifier: str
    from_dt: datetime
    to_dt: datetime
    lines: List[LookupLine]

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "LookupRequest":
        return cls(
            identifier=str(_require(payload, "Identifier")),
            from_dt=_parse_dt(payload, "FromDT"),
            to_dt=_parse_dt(payload, "ToDT"),
            lines=[LookupLine.from_dict(l) for l in _parse_list(payload, "Lines")],
        )


@dataclass
class LookupResult:
    identifier: str
    from_dt: datetime
    to_dt: datetime
    status: HTTPStatus
    lines: List[LookupLine]
    first_dt: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class ReliabilityTag:
    sequence: int
    tag_address: str
    is_retrieved: bool = False

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ReliabilityTag":
        return cls(
            sequence=_parse_int(payload, "Sequence"),
            tag_address=str(_require(payload, "TagAddress")),
        )


@dataclass
class ReliabilityRequest:
    identifier: str
    start: datetime
    end: datetime
    tags: List[ReliabilityTag]

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ReliabilityRequest":
        return cls(
            identifier=str(_require(payload, "Identifier")),
            start=_parse_dt(payload, "StartTime"),
            end=_parse_dt(payload, "EndTime"),
            tags=[ReliabilityTag.from_dict(t) for t in _parse_list(payload, "Tags")],
        )


@dataclass
class ReliabilityResult:
    identifier: str
    start: datetime
    end: datetime
    status: HTTPStatus
    tags: List[ReliabilityTag]
    error: Optional[str] = None
