"""Postsolve storage layout, mappings and persistence."""
import io
import pytest
import numpy as np
from numpy import inf
from presolvekit import *
from conftest import build_problem


def test_fixed_col_layout(two_row_problem, postsolve_type):
    """Fixed columns carry cost and column entries only for dual postsolve."""
    storage = PostsolveStorage(two_row_problem, postsolve_type)
    storage.store_fixed_col(0, 1.0, 3.0, [(0, 2.0)])
    record = storage.get_record(0)
    assert record.type == ReductionType.FIXED_COL
    if postsolve_type == FULL:
        assert list(record.indices) == [0, 1, 0]
        assert list(record.values) == [1.0, 3.0, 2.0]
    else:
        assert list(record.indices) == [0]
        assert list(record.values) == [1.0]
    assert storage.start == [0, len(record.indices)]


def test_dual_records_only_in_full_mode(two_row_problem, postsolve_type):
    """Bound changes, redundant rows and dual shifts are only stored for dual postsolve."""
    storage = PostsolveStorage(two_row_problem, postsolve_type)
    storage.store_var_bound_change(1, True, 1.0, 0.0)
    storage.store_redundant_row(1)
    storage.store_dual_value(False, 1, 2.5)
    storage.store_row_bound_change_forced_by_row(0, False, 1.0, 2.0, 1, -1.0)
    if postsolve_type == FULL:
        assert storage.types == [ReductionType.VAR_BOUND_CHANGE, ReductionType.REDUNDANT_ROW,
                                 ReductionType.ROW_DUAL_VALUE,
                                 ReductionType.REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW,
                                 ReductionType.ROW_BOUND_CHANGE_FORCED_BY_ROW]
        reason, forced = storage.get_record(3), storage.get_record(4)
        assert list(reason.indices) == [0, 1]
        assert list(reason.values) == [-1.0, 0.0]
        assert list(forced.values) == [1.0, 2.0]
        assert forced.indices[1] == 0
    else:
        assert len(storage) == 0
        assert storage.start == [0]


def test_substitution_record_with_dual(two_row_problem):
    """Aggregating w by z + w = 1 records the substitution, the dual shift and the removed row."""
    storage = PostsolveStorage(two_row_problem, FULL)
    update = ProblemUpdate(two_row_problem, storage)
    log = ReductionLog(two_row_problem)
    log.aggregate_free_col(3, 1)
    assert update.apply_reductions(1, log).status == REDUCED
    assert storage.types == [ReductionType.SUBSTITUTED_COL_WITH_DUAL, ReductionType.ROW_DUAL_VALUE,
                             ReductionType.REDUNDANT_ROW]
    record = storage.get_record(0)
    assert list(record.indices) == [3, 1, 2, 2, 3, 1, 1]
    assert list(record.values) == [1.0, 1.0, 0.0, 1.0, 1.0, 0.0, 1.0]
    dual = storage.get_record(1)
    assert (dual.indices[0], dual.values[0]) == (1, 1.0)
    storage.check_consistency()


def test_mapping_after_compress(two_row_problem):
    """Surviving columns come first in the mapping, eliminated ones after them."""
    storage = PostsolveStorage(two_row_problem)
    update = ProblemUpdate(two_row_problem, storage)
    log = ReductionLog(two_row_problem)
    log.replace_col(0, 1, -1.0, 1.0)
    update.apply_reductions(1, log)
    reduced = update.compress()
    assert reduced.get_n_cols() == 3
    assert reduced.get_n_rows() == 2
    assert storage.orig_col_mapping == [1, 2, 3, 0]
    assert storage.orig_row_mapping == [0, 1]
    assert (storage.n_cols_reduced, storage.n_rows_reduced) == (3, 2)
    assert storage.closed
    storage.check_consistency()
    with pytest.raises(PostsolveStorageError):
        storage.store_fixed_col(1, 0.0)
    with pytest.raises(PostsolveStorageError):
        storage.compress([0, 1], [0, 1, 2])


def test_mapping_of_removed_rows(two_row_problem):
    """Redundant rows move behind the surviving rows."""
    storage = PostsolveStorage(two_row_problem)
    update = ProblemUpdate(two_row_problem, storage)
    log = ReductionLog(two_row_problem)
    log.mark_row_redundant(0)
    update.apply_reductions(1, log)
    update.compress()
    assert storage.orig_row_mapping == [1, 0]
    assert storage.n_rows_reduced == 1


def full_storage():
    problem = build_problem([0.1 + 0.2, -1.0 / 3.0, 0.0], [[1.5, 0, -2.0], [0, 1e-7, 3.0]], [-inf, 1.0],
                            [0.7, 1.0], [-inf, 0.0, 1.0 / 7.0], [inf, 1.0, 2.0], [False, True, False],
                            name='persist')
    storage = PostsolveStorage(problem, FULL)
    storage.store_fixed_col(2, 1.0 / 7.0, 0.0, [(0, -2.0), (1, 3.0)])
    storage.store_var_bound_change(1, False, 0.0, inf, 1, 1e-7)
    storage.store_dual_value(True, 0, 0.1 + 0.2)
    storage.store_row_bound_change(0, True, -inf, 2.0 / 3.0)
    storage.compress([1], [0, 1])
    return storage


def assert_same_storage(loaded, storage):
    assert loaded.postsolve_type == storage.postsolve_type
    assert loaded.types == storage.types
    assert loaded.start == storage.start
    assert loaded.indices == storage.indices
    assert np.array(loaded.values).tobytes() == np.array(storage.values).tobytes()
    assert loaded.orig_row_mapping == storage.orig_row_mapping
    assert loaded.orig_col_mapping == storage.orig_col_mapping
    assert (loaded.n_rows_reduced, loaded.n_cols_reduced) == (storage.n_rows_reduced, storage.n_cols_reduced)
    assert loaded.closed == storage.closed
    original, restored = storage.original_problem, loaded.original_problem
    for attr in ('objective', 'lower_bounds', 'upper_bounds', 'lhs', 'rhs'):
        assert getattr(restored, attr).tobytes() == getattr(original, attr).tobytes()
    assert restored.objective_offset == original.objective_offset
    assert restored.col_flags == original.col_flags
    assert restored.row_flags == original.row_flags
    assert restored.name == original.name
    assert restored.col_names == original.col_names
    assert restored.row_names == original.row_names
    for row in range(original.get_n_rows()):
        assert restored.matrix.get_row_entries(row) == original.matrix.get_row_entries(row)


def test_save_load_stream():
    """Storage and original problem survive a round trip through a stream bit for bit."""
    storage = full_storage()
    buffer = io.BytesIO()
    storage.save(buffer)
    buffer.seek(0)
    assert_same_storage(PostsolveStorage.load(buffer), storage)


def test_save_load_file(tmp_path):
    """Storage can be written to and read from a file."""
    storage = full_storage()
    filename = tmp_path / 'postsolve.npz'
    storage.save_to_file(filename)
    assert_same_storage(PostsolveStorage.load_from_file(filename), storage)


def test_load_rejects_invalid_archives():
    """Missing entries, foreign versions and broken structure raise."""
    buffer = io.BytesIO()
    np.savez(buffer, header=np.array([1, 0, 0, 0, 0, 0], dtype=np.int64))
    buffer.seek(0)
    with pytest.raises(PostsolveStorageError):
        PostsolveStorage.load(buffer)

    storage = full_storage()
    storage.start[-1] += 1
    buffer = io.BytesIO()
    storage.save(buffer)
    buffer.seek(0)
    with pytest.raises(PostsolveStorageError):
        PostsolveStorage.load(buffer)

    storage = full_storage()
    buffer = io.BytesIO()
    storage.save(buffer)
    buffer.seek(0)
    with np.load(buffer) as data:
        arrays = dict(data)
    header = arrays['header'].copy()
    header[0] = 99
    arrays['header'] = header
    buffer = io.BytesIO()
    np.savez(buffer, **arrays)
    buffer.seek(0)
    with pytest.raises(PostsolveStorageError):
        PostsolveStorage.load(buffer)


def test_consistency_checks(two_row_problem):
    """Structural violations are detected."""
    storage = PostsolveStorage(two_row_problem, FULL)
    storage.store_redundant_row(1)
    storage.check_consistency()
    storage.types.append(99)
    storage.start.append(storage.start[-1])
    with pytest.raises(PostsolveStorageError):
        storage.check_consistency()
    with pytest.raises(PostsolveStorageError):
        storage.get_record(1)
    with pytest.raises(PostsolveStorageError):
        storage.get_record(2)
    storage = PostsolveStorage(two_row_problem)
    storage.orig_col_mapping = [0, 0, 2, 3]
    with pytest.raises(PostsolveStorageError):
        storage.check_consistency()


def test_coefficient_change_saves_row(parallel_problem):
    """The full row is saved before one of its coefficients changes."""
    storage = PostsolveStorage(parallel_problem, FULL)
    update = ProblemUpdate(parallel_problem, storage)
    log = ReductionLog(parallel_problem)
    log.change_matrix_entry(0, 1, 1.5)
    assert update.apply_reductions(1, log).status == REDUCED
    assert storage.types == [ReductionType.SAVE_ROW, ReductionType.COEFFICIENT_CHANGE]
    saved, change = storage.get_record(0), storage.get_record(1)
    assert list(saved.indices) == [0, int(RowFlag.LHS_INF), 2, 0, 1]
    assert list(saved.values) == [-inf, 4.0, 0.0, 1.0, 2.0]
    assert list(change.indices) == [0, 1]
    assert list(change.values) == [1.5, 2.0]
    update.compress()
    status, solution = Postsolve().undo(Solution([1.0, 2.0], [0.0, 0.0], [0.0]), storage)
    assert status == OK
    assert list(solution.primal) == [1.0, 2.0]
