"""Tests for line-movement detection and classification."""

import pytest

from fight_odds.core.movement import MovementDetector, classify_movement
from fight_odds.events import ODDS_MOVEMENT
from fight_odds.models.alerts import AlertPriority, MovementType


@pytest.fixture
def detector(bus) -> MovementDetector:
    return MovementDetector(min_percentage_change=5.0, steam_percentage=10.0, bus=bus)


class TestClassification:

    def test_same_direction_above_steam(self):
        assert classify_movement(-20.0, -15.4) == MovementType.STEAM

    def test_same_direction_below_steam(self):
        assert classify_movement(6.0, 7.0) == MovementType.SIGNIFICANT

    def test_opposite_directions(self):
        assert classify_movement(13.3, -15.4) == MovementType.REVERSE

    def test_one_side_flat(self):
        assert classify_movement(12.0, 0.0) == MovementType.SIGNIFICANT

    def test_steam_boundary_is_inclusive(self):
        assert classify_movement(10.0, 2.0) == MovementType.STEAM


class TestDetector:

    def test_first_snapshot_is_baseline(self, detector, make_snapshot, recorder):
        assert detector.detect(make_snapshot(-150, 130)) is None
        assert detector.baseline("fight-1", "DraftKings") is not None
        assert len(detector) == 1
        assert recorder.named(ODDS_MOVEMENT) == []

    def test_unchanged_prices_do_not_alert(self, detector, make_snapshot):
        detector.detect(make_snapshot(-150, 130))
        assert detector.detect(make_snapshot(-150, 130)) is None

    def test_below_threshold(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        # |Δ1| = 4%, |Δ2| ~ 3.1%
        assert detector.detect(make_snapshot(-144, 126, timestamp=later(5))) is None

    def test_threshold_boundary_alerts(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-200, 100))
        alert = detector.detect(make_snapshot(-210, 100, timestamp=later(5)))
        assert alert is not None
        assert alert.percentage_change == pytest.approx(5.0)
        assert alert.movement_type == MovementType.SIGNIFICANT

    def test_steam_boundary(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-200, 200))
        alert = detector.detect(make_snapshot(-220, 190, timestamp=later(5)))
        assert alert.percentage_change == pytest.approx(10.0)
        assert alert.movement_type == MovementType.STEAM

    def test_steam(self, detector, make_snapshot, later, recorder):
        old = make_snapshot(-150, 130)
        new = make_snapshot(-180, 110, timestamp=later(5))
        detector.detect(old)
        alert = detector.detect(new)

        assert alert is not None
        assert alert.movement_type == MovementType.STEAM
        assert alert.priority == AlertPriority.URGENT
        assert alert.fighter1_change == pytest.approx(-20.0)
        assert alert.fighter2_change == pytest.approx(-15.38, abs=0.01)
        assert alert.percentage_change == pytest.approx(20.0)
        assert alert.old_odds == old
        assert alert.new_odds == new
        assert alert.timestamp == new.timestamp

        events = recorder.named(ODDS_MOVEMENT)
        assert events == [{
            "fightId": "fight-1",
            "bookmaker": "DraftKings",
            "movementType": "steam",
            "percentageChange": pytest.approx(20.0),
        }]

    def test_favorite_drift_alone_is_significant(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        alert = detector.detect(make_snapshot(-120, 130, timestamp=later(5)))
        assert alert.movement_type == MovementType.SIGNIFICANT

    def test_both_sides_drifting_is_steam(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        alert = detector.detect(make_snapshot(-120, 160, timestamp=later(5)))
        assert alert.movement_type == MovementType.STEAM

    def test_reverse(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        alert = detector.detect(make_snapshot(-130, 110, timestamp=later(5)))

        assert alert is not None
        assert alert.movement_type == MovementType.REVERSE
        assert alert.priority == AlertPriority.HIGH
        assert alert.fighter1_change > 0 > alert.fighter2_change

    def test_significant(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        alert = detector.detect(make_snapshot(-140, 130, timestamp=later(5)))
        assert alert is not None
        assert alert.movement_type == MovementType.SIGNIFICANT
        assert alert.priority == AlertPriority.MEDIUM

    def test_implied_probability_change(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        alert = detector.detect(make_snapshot(-200, 160, timestamp=later(5)))
        dp1, dp2 = alert.implied_probability_change
        # 0.6 -> 0.6667 and 0.4348 -> 0.3846
        assert dp1 == pytest.approx(0.0667, abs=1e-3)
        assert dp2 == pytest.approx(-0.0502, abs=1e-3)

    def test_baseline_replaced_even_without_alert(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        detector.detect(make_snapshot(-145, 128, timestamp=later(5)))
        assert detector.baseline("fight-1", "DraftKings").fighter1_odds == -145

    def test_repeat_snapshot_does_not_realert(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        moved = make_snapshot(-180, 110, timestamp=later(5))
        assert detector.detect(moved) is not None
        assert detector.detect(moved) is None

    def test_keys_are_independent(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130, bookmaker="DraftKings"))
        assert detector.detect(make_snapshot(-180, 110, bookmaker="FanDuel", timestamp=later(5))) is None
        assert len(detector) == 2


class TestUnknownPrices:

    def test_real_to_unknown_is_ignored(self, detector, make_snapshot, later, recorder):
        detector.detect(make_snapshot(-150, 130))
        assert detector.detect(make_snapshot(0, 130, timestamp=later(5))) is None
        assert detector.baseline("fight-1", "DraftKings").fighter1_odds == -150
        assert recorder.named(ODDS_MOVEMENT) == []
        assert detector.stats()["rejected"] == 1

    def test_unknown_first_snapshot_sets_no_baseline(self, detector, make_snapshot, later):
        assert detector.detect(make_snapshot(0, 130)) is None
        assert detector.baseline("fight-1", "DraftKings") is None
        assert detector.detect(make_snapshot(-150, 120, timestamp=later(5))) is None
        assert detector.baseline("fight-1", "DraftKings").fighter1_odds == -150

    def test_real_move_after_unknown_compares_to_last_real_price(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        detector.detect(make_snapshot(0, 130, timestamp=later(5)))
        alert = detector.detect(make_snapshot(-200, 160, timestamp=later(10)))

        assert alert is not None
        assert alert.movement_type == MovementType.REVERSE
        assert alert.old_odds.fighter1_odds == -150
        assert alert.fighter1_change == pytest.approx(-33.33, abs=0.01)

    def test_below_minimum_odds_value_is_ignored(self, make_snapshot, later):
        detector = MovementDetector(minimum_odds_value=100)
        detector.detect(make_snapshot(-150, 130))
        assert detector.detect(make_snapshot(-150, 50, timestamp=later(5))) is None
        assert detector.baseline("fight-1", "DraftKings").fighter2_odds == 130


class TestBaselineCache:

    def test_lru_eviction(self, make_snapshot):
        detector = MovementDetector(max_entries=2)
        detector.detect(make_snapshot(-150, 130, fight_id="a"))
        detector.detect(make_snapshot(-150, 130, fight_id="b"))
        # Touch "a" so "b" is least recently used
        detector.detect(make_snapshot(-150, 130, fight_id="a"))
        detector.detect(make_snapshot(-150, 130, fight_id="c"))

        assert len(detector) == 2
        assert detector.baseline("b", "DraftKings") is None
        assert detector.baseline("a", "DraftKings") is not None
        assert detector.stats()["evictions"] == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            MovementDetector(max_entries=0)

    def test_clear(self, detector, make_snapshot):
        detector.detect(make_snapshot(-150, 130))
        detector.clear()
        assert len(detector) == 0


class TestCooldown:

    def test_cooldown_suppresses_per_fight(self, make_snapshot, later):
        detector = MovementDetector(alert_cooldown_seconds=600)
        detector.detect(make_snapshot(-150, 130))
        assert detector.detect(make_snapshot(-180, 110, timestamp=later(1))) is not None
        # Second big move inside 10 minutes is suppressed
        assert detector.detect(make_snapshot(-220, 100, timestamp=later(5))) is None
        assert detector.detect(make_snapshot(-150, 130, timestamp=later(12))) is not None

    def test_stats_count_by_type(self, detector, make_snapshot, later):
        detector.detect(make_snapshot(-150, 130))
        detector.detect(make_snapshot(-180, 110, timestamp=later(1)))
        assert detector.stats()["alerts_by_type"]["steam"] == 1
