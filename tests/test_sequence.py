"""
Company Portal
Tests: sequential request numbers.

Covers:
    1. First allocation, monotonic increments, independent keys
    2. Zero-padded display format
    3. Uniqueness under concurrent allocation (file-backed SQLite)
"""

from concurrent.futures import ThreadPoolExecutor

from portal import create_app
from portal.models import db
from portal.services import sequence_service


class TestNextId:
    def test_first_value_is_one(self):
        assert sequence_service.next_id("workflowCounter") == 1
        db.session.commit()
        assert sequence_service.current_value("workflowCounter") == 1

    def test_values_increase_by_one(self):
        values = []
        for _ in range(5):
            values.append(sequence_service.next_id("workflowCounter"))
            db.session.commit()
        assert values == [1, 2, 3, 4, 5]

    def test_keys_are_independent(self):
        assert sequence_service.next_id("a") == 1
        assert sequence_service.next_id("a") == 2
        assert sequence_service.next_id("b") == 1
        db.session.commit()

    def test_unused_key_reports_zero(self):
        assert sequence_service.current_value("never-used") == 0

    def test_rollback_discards_the_increment(self):
        sequence_service.next_id("workflowCounter")
        db.session.commit()
        sequence_service.next_id("workflowCounter")
        db.session.rollback()
        assert sequence_service.current_value("workflowCounter") == 1


class TestFormat:
    def test_zero_padded_to_four(self):
        assert sequence_service.format_request_id(1) == "0001"
        assert sequence_service.format_request_id(42) == "0042"

    def test_wider_numbers_kept_intact(self):
        assert sequence_service.format_request_id(12345) == "12345"

    def test_custom_width(self):
        assert sequence_service.format_request_id(7, width=6) == "000007"


def test_concurrent_allocations_are_unique(tmp_path):
    """Parallel sessions never receive the same number."""
    counter_app = create_app("testing", {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'counter.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
    })

    def _allocate(_):
        with counter_app.app_context():
            try:
                value = sequence_service.next_id("workflowCounter")
                db.session.commit()
                return value
            finally:
                db.session.remove()

    with ThreadPoolExecutor(max_workers=8) as pool:
        values = list(pool.map(_allocate, range(40)))

    assert sorted(values) == list(range(1, 41))

    with counter_app.app_context():
        assert sequence_service.current_value("workflowCounter") == 40
        db.engine.dispose()
