"""
Movement analytics over an agent's location history window.

Works on consecutive pairs of a chronological LocationSample list:
- segment_speeds(): distance / elapsed for every pair (vectorised)
- detect_movement_anomalies(): teleport / stationary / low-accuracy patterns
- summarize_movement(): totals plus a NORMAL / SUSPICIOUS / FRAUDULENT label
"""

from typing import List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, Field

from src.core.schema import Coordinate, LocationSample
from src.geo.geo_math import EARTH_RADIUS_METERS

TELEPORT_SPEED_MPS = 100.0       # 360 km/h
STATIONARY_SECONDS = 3600        # exact same spot for over an hour
LOW_ACCURACY_METERS = 200.0


class MovementAnomalies(BaseModel):
    anomalies: List[LocationSample] = Field(default_factory=list)
    patterns: List[str] = Field(default_factory=list)
    risk_score: int = 0


class MovementSummary(BaseModel):
    total_distance: float = 0.0
    average_speed: float = 0.0
    time_spent: float = 0.0
    most_visited_area: Optional[Coordinate] = None
    travel_pattern: str = "NORMAL"


def _segments(samples: Sequence[LocationSample]):
    """Distances (m) and elapsed times (s) between consecutive samples."""
    lat = np.radians([s.coordinate.latitude for s in samples])
    lon = np.radians([s.coordinate.longitude for s in samples])
    ts = np.array([s.timestamp.timestamp() for s in samples])

    d_lat = np.diff(lat)
    d_lon = np.diff(lon)
    h = np.sin(d_lat / 2) ** 2 + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(d_lon / 2) ** 2
    h = np.clip(h, 0.0, 1.0)
    distances = EARTH_RADIUS_METERS * 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))

    return distances, np.diff(ts)


def segment_speeds(samples: Sequence[LocationSample]) -> List[Optional[float]]:
    """
    Speed of every consecutive pair, None where elapsed time is not positive.
    """
    if len(samples) < 2:
        return []

    distances, elapsed = _segments(samples)
    return [float(d / t) if t > 0 else None for d, t in zip(distances, elapsed)]


def count_speed_violations(samples: Sequence[LocationSample], limit_mps: float) -> int:
    """Number of consecutive pairs whose implied speed exceeds `limit_mps`."""
    return sum(1 for speed in segment_speeds(samples) if speed is not None and speed > limit_mps)


def detect_movement_anomalies(samples: Sequence[LocationSample]) -> MovementAnomalies:
    result = MovementAnomalies()
    if len(samples) < 2:
        return result

    distances, elapsed = _segments(samples)
    score = 0

    for i in range(1, len(samples)):
        distance = float(distances[i - 1])
        seconds = float(elapsed[i - 1])
        current = samples[i]

        if seconds > 0 and distance / seconds > TELEPORT_SPEED_MPS:
            result.anomalies.append(current)
            result.patterns.append("Teleportation detected")
            score += 50

        if distance == 0 and seconds > STATIONARY_SECONDS:
            result.patterns.append("Extended stationary period with exact coordinates")
            score += 20

        if current.accuracy > LOW_ACCURACY_METERS:
            result.patterns.append("Low accuracy GPS reading")
            score += 10

    result.risk_score = min(score, 100)
    return result


def summarize_movement(samples: Sequence[LocationSample]) -> MovementSummary:
    if len(samples) < 2:
        return MovementSummary()

    distances, elapsed = _segments(samples)
    total_distance = float(distances.sum())
    total_time = float(elapsed.sum())

    # Most visited area: the most frequent exact coordinate, earliest wins ties
    counts = {}
    for s in samples:
        counts[s.coordinate] = counts.get(s.coordinate, 0) + 1
    most_visited = max(counts, key=counts.get)

    risk = detect_movement_anomalies(samples).risk_score
    if risk > 70:
        pattern = "FRAUDULENT"
    elif risk > 30:
        pattern = "SUSPICIOUS"
    else:
        pattern = "NORMAL"

    return MovementSummary(
        total_distance=total_distance,
        average_speed=total_distance / total_time if total_time > 0 else 0.0,
        time_spent=total_time,
        most_visited_area=most_visited,
        travel_pattern=pattern,
    )
