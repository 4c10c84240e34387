from datetime import timedelta

import pytest

from batchledger.models import BatchStatus, ItemAssignment
from batchledger.services.batch_ledger import (
    cancel_batch,
    commit_allocation,
    get_batch,
    list_adjustments,
    list_available_batches,
    list_batches,
    register_batch,
    update_batch,
)
from batchledger.services.errors import (
    BatchInUseError,
    BatchNotFoundError,
    BranchNotFoundError,
    DuplicateInstanceCodeError,
    InvalidInputError,
    InvalidProductTypeError,
)
from batchledger.utils.timezone_utils import TimezoneUtils


def test_register_batch_starts_full(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 100, created_by=7)

        stored = get_batch(batch.id)
        assert stored.original_quantity == 100.0
        assert stored.remaining_quantity == 100.0
        assert stored.status == BatchStatus.IN_STOCK
        assert stored.created_by == 7


def test_instance_codes_are_generated_per_product_and_branch(app, catalog):
    with app.app_context():
        first = register_batch(catalog.coil, catalog.main, 10)
        second = register_batch(catalog.coil, catalog.main, 10)
        elsewhere = register_batch(catalog.coil, catalog.north, 10)
        wire = register_batch(catalog.wire, catalog.main, 10)

        assert first.instance_code == 'COIL-05-001'
        assert second.instance_code == 'COIL-05-002'
        assert elsewhere.instance_code == 'COIL-05-001'
        # Unsafe characters in the SKU are replaced
        assert wire.instance_code == 'WIRE-2MM-001'


def test_duplicate_instance_code_in_branch_is_a_conflict(app, catalog):
    with app.app_context():
        register_batch(catalog.coil, catalog.main, 10, instance_code='C-1')
        register_batch(catalog.coil, catalog.north, 10, instance_code='C-1')

        with pytest.raises(DuplicateInstanceCodeError):
            register_batch(catalog.coil, catalog.main, 5, instance_code='C-1')


def test_register_batch_validation(app, catalog):
    with app.app_context():
        with pytest.raises(InvalidInputError):
            register_batch(catalog.coil, catalog.main, 0)
        with pytest.raises(InvalidInputError):
            register_batch(catalog.coil, catalog.main, 'lots')
        with pytest.raises(InvalidProductTypeError):
            register_batch(catalog.sheet, catalog.main, 10)
        with pytest.raises(BranchNotFoundError):
            register_batch(catalog.coil, 999, 10)
        assert list_batches() == []


def test_available_batches_are_fifo_ordered(app, catalog):
    with app.app_context():
        newer = register_batch(catalog.coil, catalog.main, 10, instance_code='NEW')
        older = register_batch(
            catalog.coil, catalog.main, 10, instance_code='OLD',
            received_at=TimezoneUtils.utc_now() - timedelta(days=30),
        )
        register_batch(catalog.coil, catalog.north, 10, instance_code='FAR')

        ids = [b.id for b in list_available_batches(catalog.coil, branch_id=catalog.main)]
        assert ids == [older.id, newer.id]
        assert len(list_available_batches(catalog.coil)) == 3


def test_depleted_and_cancelled_batches_are_not_available(app, catalog):
    with app.app_context():
        drained = register_batch(catalog.coil, catalog.main, 5)
        cancelled = register_batch(catalog.coil, catalog.main, 5)
        live = register_batch(catalog.coil, catalog.main, 5)

        commit_allocation([{'batch_id': drained.id, 'quantity': 5}], 'SO-1', branch_id=catalog.main)
        cancel_batch(cancelled.id, user_id=1, reason='Entered twice')

        assert [b.id for b in list_available_batches(catalog.coil)] == [live.id]
        assert get_batch(drained.id).status == BatchStatus.DEPLETED
        assert [b.id for b in list_batches(status=BatchStatus.CANCELLED)] == [cancelled.id]


def test_cancel_batch_records_audit_row(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 12)

        cancel_batch(batch.id, user_id=3, reason='Wrong product')

        assert get_batch(batch.id).status == BatchStatus.CANCELLED
        adjustments = list_adjustments(batch_id=batch.id)
        assert len(adjustments) == 1
        assert adjustments[0].delta == 0.0
        assert adjustments[0].user_id == 3
        assert 'Wrong product' in adjustments[0].reason


def test_cancel_batch_with_assignments_is_refused(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 12)
        commit_allocation([{'batch_id': batch.id, 'quantity': 2}], 'SO-9', branch_id=catalog.main)

        with pytest.raises(BatchInUseError):
            cancel_batch(batch.id, user_id=3, reason='Oops')

        assert get_batch(batch.id).status == BatchStatus.IN_STOCK
        assert ItemAssignment.query.filter_by(batch_id=batch.id).count() == 1


def test_cancel_requires_reason(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 12)
        with pytest.raises(InvalidInputError):
            cancel_batch(batch.id, user_id=3, reason='  ')
        with pytest.raises(BatchNotFoundError):
            cancel_batch(4040, user_id=3, reason='Gone')


def test_update_batch_edits_code_and_notes(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 12)

        update_batch(batch.id, instance_code='  COIL-RELABEL ', notes='Tag replaced')

        edited = get_batch(batch.id)
        assert edited.instance_code == 'COIL-RELABEL'
        assert edited.notes == 'Tag replaced'
        assert edited.remaining_quantity == 12.0
        assert edited.original_quantity == 12.0


def test_update_batch_code_is_unique_per_branch(app, catalog):
    with app.app_context():
        register_batch(catalog.coil, catalog.main, 5, instance_code='TAKEN')
        register_batch(catalog.coil, catalog.north, 5, instance_code='NORTH-ONLY')
        batch = register_batch(catalog.coil, catalog.main, 12)

        with pytest.raises(DuplicateInstanceCodeError):
            update_batch(batch.id, instance_code='TAKEN')

        update_batch(batch.id, instance_code='NORTH-ONLY')
        assert get_batch(batch.id).instance_code == 'NORTH-ONLY'
        # Keeping its own code is not a conflict
        update_batch(batch.id, instance_code='NORTH-ONLY', notes='Rechecked')


@pytest.mark.parametrize('fields', [
    {'remaining_quantity': 3},
    {'original_quantity': 20},
    {'status': BatchStatus.DEPLETED},
    {'instance_code': '   '},
    {'instance_code': None},
    {},
])
def test_update_batch_refuses_quantity_and_bad_fields(app, catalog, fields):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 12)
        code = batch.instance_code

        with pytest.raises(InvalidInputError):
            update_batch(batch.id, **fields)

        unchanged = get_batch(batch.id)
        assert unchanged.remaining_quantity == 12.0
        assert unchanged.status == BatchStatus.IN_STOCK
        assert unchanged.instance_code == code


def test_update_unknown_batch(app, catalog):
    with app.app_context():
        with pytest.raises(BatchNotFoundError):
            update_batch(4040, notes='Nobody home')
