import pytest

from batchledger.models import BatchStatus, ItemAssignment, ReferenceType
from batchledger.services.batch_ledger import (
    assign_material,
    commit_allocation,
    get_batch,
    list_assignments,
    propose_allocation,
    register_batch,
)
from batchledger.services.errors import (
    BatchNotFoundError,
    BatchProductMismatchError,
    BranchMismatchError,
    InsufficientStockError,
    InvalidInputError,
    StaleBatchError,
)
from batchledger.services.recipe_service import create_recipe


def test_commit_deducts_and_records_assignments(app, catalog):
    with app.app_context():
        a = register_batch(catalog.coil, catalog.main, 15)
        b = register_batch(catalog.coil, catalog.main, 50)
        proposal = propose_allocation(catalog.coil, 22, catalog.main)

        assignments = commit_allocation(proposal.lines, 'SO-100', branch_id=catalog.main, created_by=4)

        assert [x.quantity_deducted for x in assignments] == [15.0, 7.0]
        assert get_batch(a.id).remaining_quantity == 0.0
        assert get_batch(a.id).status == BatchStatus.DEPLETED
        assert get_batch(b.id).remaining_quantity == 43.0
        assert get_batch(b.id).status == BatchStatus.IN_STOCK
        assert {x.reference_id for x in list_assignments(reference_id='SO-100')} == {'SO-100'}


def test_second_commit_against_same_stock_is_stale(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 5)
        first = propose_allocation(catalog.coil, 5, catalog.main)
        second = propose_allocation(catalog.coil, 5, catalog.main)

        commit_allocation(first.lines, 'SO-1', branch_id=catalog.main)
        with pytest.raises(StaleBatchError) as excinfo:
            commit_allocation(second.lines, 'SO-2', branch_id=catalog.main)

        assert excinfo.value.batch_id == batch.id
        assert get_batch(batch.id).remaining_quantity == 0.0
        assert len(list_assignments(batch_id=batch.id)) == 1


def test_failure_rolls_back_every_line(app, catalog):
    with app.app_context():
        a = register_batch(catalog.coil, catalog.main, 10)
        b = register_batch(catalog.coil, catalog.main, 3)

        with pytest.raises(StaleBatchError):
            commit_allocation(
                [{'batch_id': a.id, 'quantity': 4}, {'batch_id': b.id, 'quantity': 6}],
                'SO-3',
                branch_id=catalog.main,
            )

        assert get_batch(a.id).remaining_quantity == 10.0
        assert get_batch(b.id).remaining_quantity == 3.0
        assert ItemAssignment.query.count() == 0


def test_commit_checks_branch_and_product(app, catalog):
    with app.app_context():
        north = register_batch(catalog.coil, catalog.north, 10)
        wire = register_batch(catalog.wire, catalog.main, 10)

        with pytest.raises(BranchMismatchError):
            commit_allocation([{'batch_id': north.id, 'quantity': 1}], 'SO-4', branch_id=catalog.main)
        with pytest.raises(BatchProductMismatchError):
            commit_allocation(
                [{'batch_id': wire.id, 'quantity': 1}], 'SO-4',
                branch_id=catalog.main, product_id=catalog.coil,
            )
        with pytest.raises(BatchNotFoundError):
            commit_allocation([{'batch_id': 5555, 'quantity': 1}], 'SO-4', branch_id=catalog.main)

        assert get_batch(north.id).remaining_quantity == 10.0
        assert get_batch(wire.id).remaining_quantity == 10.0


@pytest.mark.parametrize('lines', [
    [],
    [{'batch_id': 1, 'quantity': 0}],
    [{'batch_id': 1, 'quantity': -2}],
    [{'batch_id': 1, 'quantity': 1}, {'batch_id': 1, 'quantity': 1}],
    [{'quantity': 1}],
])
def test_commit_rejects_malformed_lines(app, catalog, lines):
    with app.app_context():
        register_batch(catalog.coil, catalog.main, 10)
        with pytest.raises(InvalidInputError):
            commit_allocation(lines, 'SO-5', branch_id=catalog.main)


def test_commit_requires_reference(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 10)
        with pytest.raises(InvalidInputError):
            commit_allocation([{'batch_id': batch.id, 'quantity': 1}], '  ', branch_id=catalog.main)


def test_commit_requires_branch(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 10)
        with pytest.raises(InvalidInputError):
            commit_allocation([{'batch_id': batch.id, 'quantity': 1}], 'SO-8', branch_id=None)
        assert get_batch(batch.id).remaining_quantity == 10.0


def test_depleted_batch_rejects_further_deductions(app, catalog):
    with app.app_context():
        batch = register_batch(catalog.coil, catalog.main, 2)
        commit_allocation([{'batch_id': batch.id, 'quantity': 2}], 'SO-6', branch_id=catalog.main)

        with pytest.raises(StaleBatchError):
            commit_allocation([{'batch_id': batch.id, 'quantity': 0.5}], 'SO-7', branch_id=catalog.main)


def test_assign_material_from_recipe(app, catalog):
    with app.app_context():
        create_recipe('Sheet', catalog.sheet, catalog.coil, 2, wastage_margin=10)
        a = register_batch(catalog.coil, catalog.main, 15)
        b = register_batch(catalog.coil, catalog.main, 50)

        result = assign_material(
            'SALE-1', catalog.sheet, 10,
            branch_id=catalog.main, reference_type=ReferenceType.PRODUCTION,
        )

        assert result.shortfall == 0.0
        assert not result.is_partial
        assert result.total_assigned == pytest.approx(22.0)
        assert [x.batch_id for x in result.assignments] == [a.id, b.id]
        assert all(x.reference_type == ReferenceType.PRODUCTION for x in result.assignments)
        assert get_batch(b.id).remaining_quantity == pytest.approx(43.0)


def test_assign_material_shortfall_is_refused_by_default(app, catalog):
    with app.app_context():
        create_recipe('Sheet', catalog.sheet, catalog.coil, 2)
        batch = register_batch(catalog.coil, catalog.main, 5)

        with pytest.raises(InsufficientStockError) as excinfo:
            assign_material('SALE-2', catalog.sheet, 10, branch_id=catalog.main)

        assert excinfo.value.shortfall == pytest.approx(15.0)
        assert get_batch(batch.id).remaining_quantity == 5.0


def test_assign_material_partial_when_allowed(app, catalog):
    with app.app_context():
        create_recipe('Sheet', catalog.sheet, catalog.coil, 2)
        batch = register_batch(catalog.coil, catalog.main, 5)

        result = assign_material('SALE-3', catalog.sheet, 10, branch_id=catalog.main, allow_partial=True)

        assert result.is_partial
        assert result.shortfall == pytest.approx(15.0)
        assert result.total_assigned == 5.0
        assert get_batch(batch.id).status == BatchStatus.DEPLETED


def test_partial_policy_follows_config(app, catalog):
    app.config['ALLOW_PARTIAL_ALLOCATION'] = True
    with app.app_context():
        create_recipe('Sheet', catalog.sheet, catalog.coil, 1)
        register_batch(catalog.coil, catalog.main, 3)

        result = assign_material('SALE-4', catalog.sheet, 4, branch_id=catalog.main)
        assert result.shortfall == pytest.approx(1.0)


def test_assign_material_with_operator_lines(app, catalog):
    with app.app_context():
        create_recipe('Sheet', catalog.sheet, catalog.coil, 1)
        older = register_batch(catalog.coil, catalog.main, 10)
        newer = register_batch(catalog.coil, catalog.main, 10)

        result = assign_material(
            'SALE-5', catalog.sheet, 6, branch_id=catalog.main,
            lines=[{'batch_id': newer.id, 'quantity': 6}],
        )

        assert [x.batch_id for x in result.assignments] == [newer.id]
        assert get_batch(older.id).remaining_quantity == 10.0
        assert get_batch(newer.id).remaining_quantity == 4.0


def test_operator_lines_must_match_recipe_product(app, catalog):
    with app.app_context():
        create_recipe('Sheet', catalog.sheet, catalog.coil, 1)
        wire = register_batch(catalog.wire, catalog.main, 10)

        with pytest.raises(BatchProductMismatchError):
            assign_material(
                'SALE-6', catalog.sheet, 2, branch_id=catalog.main,
                lines=[{'batch_id': wire.id, 'quantity': 2}],
            )


def test_operator_lines_cannot_exceed_requirement(app, catalog):
    with app.app_context():
        create_recipe('Sheet', catalog.sheet, catalog.coil, 1)
        batch = register_batch(catalog.coil, catalog.main, 10)

        with pytest.raises(InvalidInputError):
            assign_material(
                'SALE-7', catalog.sheet, 2, branch_id=catalog.main,
                lines=[{'batch_id': batch.id, 'quantity': 5}],
            )
        assert get_batch(batch.id).remaining_quantity == 10.0
