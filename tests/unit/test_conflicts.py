"""
Tests for airspace conflict detection and notices.

Tests cover:
- Haversine distances
- Conflict threshold (radii plus safety margin)
- Filtering of inactive, excluded and unplaced missions
- Notice creation and acknowledgement
"""

import numpy as np
import pytest

from fleetdesk.conflicts import (
    EARTH_RADIUS_M,
    SAFETY_MARGIN_M,
    ConflictNotifier,
    detect_conflicts,
    haversine_m,
)

LAT, LON = -25.4284, -49.2733

# Latitude offset of 2000 m due north
TWO_KM_NORTH = np.degrees(2000 / EARTH_RADIUS_M)


def _mission(mission_id: str, lat: float = LAT, lon: float = LON, radius: float = 500, **extra) -> dict:
    return {
        'id': mission_id,
        'status': 'active',
        'latitude': lat,
        'longitude': lon,
        'radius': radius,
        'pilot_id': f'pilot-{mission_id}',
        **extra,
    }


class TestHaversine:
    """Distance computation."""

    def test_same_point_is_zero(self) -> None:
        assert haversine_m(LAT, LON, LAT, LON) == pytest.approx(0.0)

    def test_meridian_offset(self) -> None:
        assert haversine_m(LAT, LON, LAT + TWO_KM_NORTH, LON) == pytest.approx(2000, abs=0.5)

    def test_vectorised_over_many_points(self) -> None:
        distances = haversine_m(0.0, 0.0, np.array([0.0, 0.0]), np.array([1.0, -1.0]))

        assert distances.shape == (2,)
        assert distances[0] == pytest.approx(111_195, rel=1e-3)
        assert distances[0] == pytest.approx(distances[1])


class TestDetectConflicts:
    """Overlap threshold and filtering."""

    def test_identical_centres_conflict(self) -> None:
        conflicts = detect_conflicts(_mission('new'), [_mission('old')])

        assert [c.mission_id for c in conflicts] == ['old']
        assert conflicts[0].distance_m == pytest.approx(0.0)
        assert conflicts[0].required_separation_m == 1000 + SAFETY_MARGIN_M

    def test_two_km_apart_with_small_radii_is_clear(self) -> None:
        candidate = _mission('new', radius=100)
        other = _mission('old', lat=LAT + TWO_KM_NORTH, radius=100)

        assert detect_conflicts(candidate, [other]) == []

    def test_safety_margin_counts(self) -> None:
        candidate = _mission('new', radius=950)
        other = _mission('old', lat=LAT + TWO_KM_NORTH, radius=1000)

        assert len(detect_conflicts(candidate, [other])) == 1

    def test_inactive_excluded_and_unplaced_missions_skipped(self) -> None:
        missions = [
            _mission('done', status='completed'),
            _mission('self'),
            _mission('nowhere', lat=None),
        ]

        assert detect_conflicts(_mission('new'), missions, exclude_id='self') == []

    def test_sorted_nearest_first(self) -> None:
        missions = [
            _mission('far', lat=LAT + TWO_KM_NORTH / 4),
            _mission('near'),
        ]

        assert [c.mission_id for c in detect_conflicts(_mission('new'), missions)] == ['near', 'far']

    def test_candidate_without_position_has_no_conflicts(self) -> None:
        assert detect_conflicts({'radius': 100}, [_mission('old')]) == []


class TestConflictNotifier:
    """Notices for pilots of overlapping missions."""

    def test_notify_pending_and_acknowledge(self, seeded) -> None:
        notifier = ConflictNotifier(seeded.conflict_notices, seeded.pilots)
        conflicts = detect_conflicts(_mission('new'), [_mission('old', pilot_id='p-1')])
        new_mission = {'id': 'new', 'name': 'Flood', 'pilot_id': 'p-2', 'altitude': 90, 'radius': 500}

        notices = notifier.notify(new_mission, conflicts)

        assert len(notices) == 1
        assert notices[0]['new_pilot_phone'] == '41 99999-0002'
        assert [n['id'] for n in notifier.pending_for('p-1')] == [notices[0]['id']]

        notifier.acknowledge(notices[0]['id'])

        assert notifier.pending_for('p-1') == []

    def test_mission_without_pilot_gets_no_notice(self, seeded) -> None:
        notifier = ConflictNotifier(seeded.conflict_notices, seeded.pilots)
        conflicts = detect_conflicts(_mission('new'), [_mission('old', pilot_id=None)])

        assert notifier.notify({'id': 'new'}, conflicts) == []
