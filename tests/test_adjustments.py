import pytest

from batchledger.models import BatchStatus
from batchledger.services.batch_ledger import (
    adjust_batch,
    cancel_batch,
    get_batch,
    list_adjustments,
    register_batch,
    validate_batch_ledger,
)
from batchledger.services.errors import BatchNotActiveError, InvalidInputError, InvariantViolationError


def test_physical_adjustment_updates_remaining(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 20)

        adjustment = adjust_batch(batch.id, -4, 'Damaged in handling', user_id=9)

        assert adjustment.quantity_before == 20.0
        assert adjustment.quantity_after == 16.0
        assert adjustment.original_after == 20.0
        assert not adjustment.is_correction
        assert get_batch(batch.id).remaining_quantity == 16.0
        assert validate_batch_ledger(batch.id)[0]


def test_adjustment_to_zero_depletes_and_back_restocks(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 5)

        adjust_batch(batch.id, -5, 'Lost', user_id=9)
        assert get_batch(batch.id).status == BatchStatus.DEPLETED

        adjust_batch(batch.id, 2, 'Found behind the rack', user_id=9)
        restored = get_batch(batch.id)
        assert restored.status == BatchStatus.IN_STOCK
        assert restored.remaining_quantity == 2.0
        assert validate_batch_ledger(batch.id)[0]


def test_adjustment_bounds_are_enforced(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 5)

        with pytest.raises(InvariantViolationError):
            adjust_batch(batch.id, -6, 'Too much', user_id=1)
        with pytest.raises(InvariantViolationError):
            adjust_batch(batch.id, 1, 'Above original', user_id=1)

        assert get_batch(batch.id).remaining_quantity == 5.0
        assert list_adjustments(batch_id=batch.id) == []


def test_adjustment_cannot_creep_above_original(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 50.5)

        for _ in range(5):
            with pytest.raises(InvariantViolationError):
                adjust_batch(batch.id, 0.001, 'Scale drift', user_id=1)

        adjust_batch(batch.id, -0.002, 'Offcut', user_id=1)
        adjust_batch(batch.id, 0.001, 'Offcut found', user_id=1)
        adjust_batch(batch.id, 0.001, 'Offcut found', user_id=1)
        with pytest.raises(InvariantViolationError):
            adjust_batch(batch.id, 0.001, 'Offcut found', user_id=1)

        assert get_batch(batch.id).remaining_quantity == 50.5
        assert [a.delta for a in list_adjustments(batch_id=batch.id)] == [0.001, 0.001, -0.002]
        is_valid, error, expected, actual = validate_batch_ledger(batch.id)
        assert is_valid, error
        assert expected == actual == 50.5


def test_adjustment_cannot_dip_below_zero(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 5)

        with pytest.raises(InvariantViolationError):
            adjust_batch(batch.id, -5.001, 'Miscount', user_id=1)

        assert get_batch(batch.id).remaining_quantity == 5.0
        assert get_batch(batch.id).status == BatchStatus.IN_STOCK


def test_correction_revises_original(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 100)

        adjustment = adjust_batch(batch.id, 12.5, 'Receipt entered short', user_id=1, is_correction=True)

        revised = get_batch(batch.id)
        assert revised.original_quantity == 112.5
        assert revised.remaining_quantity == 112.5
        assert adjustment.original_before == 100.0
        assert adjustment.original_after == 112.5
        assert validate_batch_ledger(batch.id)[0]


def test_correction_cannot_zero_original(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 4)
        with pytest.raises(InvariantViolationError):
            adjust_batch(batch.id, -4, 'Never arrived', user_id=1, is_correction=True)


@pytest.mark.parametrize('delta, reason, user_id', [
    (0, 'Nothing', 1),
    (1, '', 1),
    (1, '   ', 1),
    (1, 'Count', None),
])
def test_adjustment_input_validation(app, catalog, delta, reason, user_id):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 5)
        adjust_batch(batch.id, -1, 'Setup', user_id=1)
        with pytest.raises(InvalidInputError):
            adjust_batch(batch.id, delta, reason, user_id)


def test_cancelled_batch_is_not_adjustable(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 5)
        cancel_batch(batch.id, user_id=1, reason='Duplicate entry')

        with pytest.raises(BatchNotActiveError):
            adjust_batch(batch.id, -1, 'Shrinkage', user_id=1)


def test_list_adjustments_newest_first(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 10)
        other = register_batch(catalog.coil, catalog.north, 10)
        first = adjust_batch(batch.id, -1, 'One', user_id=1)
        second = adjust_batch(batch.id, -2, 'Two', user_id=1)
        adjust_batch(other.id, -1, 'Elsewhere', user_id=1)

        assert [a.id for a in list_adjustments(batch_id=batch.id)] == [second.id, first.id]
        assert len(list_adjustments(branch_id=catalog.main)) == 2
