from __future__ import annotations

from dataclasses import dataclass, field

# Flat grid step in degrees, applied to both axes regardless of latitude.
GRID_STEP_DEGREES = 0.03

STOP_CANCELLED = "cancelled"
STOP_MAX_POINTS = "max_points"
STOP_MAX_DURATION = "max_duration"


@dataclass(frozen=True)
class Center:
    name: str
    lat: float
    lng: float


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    @classmethod
    def from_offset(cls, center: Center, x: int, y: int, step: float = GRID_STEP_DEGREES) -> Coordinate:
        return cls(lat=center.lat + y * step, lng=center.lng + x * step)


@dataclass(frozen=True)
class AreaRecord:
    area_id: int
    name: str
    address: str
    lat: float
    lng: float
    total_device_count: int
    free_device_count: int
    wait_duration_seconds: int


@dataclass(frozen=True)
class ScanBudget:
    max_points: int
    max_duration_seconds: float


@dataclass(frozen=True)
class ScanOptions:
    budget: ScanBudget
    interval_seconds: float
    step_degrees: float = GRID_STEP_DEGREES


@dataclass(frozen=True)
class ScanSummary:
    center: str
    points_scanned: int
    records_received: int
    records_saved: int
    failed_points: int
    elapsed_seconds: float
    stop_reason: str


@dataclass(frozen=True)
class ScanReport:
    summaries: list[ScanSummary] = field(default_factory=list)
    failed_centers: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def points_scanned(self) -> int:
        return sum(summary.points_scanned for summary in self.summaries)

    @property
    def records_saved(self) -> int:
        return sum(summary.records_saved for summary in self.summaries)
