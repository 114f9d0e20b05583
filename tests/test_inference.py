from __future__ import annotations

import pytest

from svdsgd.data.readers import iter_test_ids
from svdsgd.engine.inference import predict_test_ids, write_submission
from svdsgd.exceptions import FormatError
from svdsgd.models.factors import FactorTable
from svdsgd.models.mf import MatrixFactorization


@pytest.fixture
def model() -> MatrixFactorization:
    user_factors = FactorTable(3, 1, init_value=1.0)
    item_factors = FactorTable(3, 1)
    item_factors.as_numpy()[:, 0] = [2.0, 3.5, 9.0]
    return MatrixFactorization(user_factors, item_factors)


def test_stops_at_first_gap_in_ids(model: MatrixFactorization) -> None:
    triples = [(1, 0, 0), (2, 1, 1), (4, 2, 2), (5, 0, 0)]

    out = list(predict_test_ids(model, triples))

    assert [test_id for test_id, _ in out] == [1, 2]
    assert [pred for _, pred in out] == pytest.approx([2.0, 3.5])


def test_stream_not_starting_at_one_yields_nothing(model: MatrixFactorization) -> None:
    assert list(predict_test_ids(model, [(2, 0, 0), (3, 0, 1)])) == []


def test_full_sequence_is_predicted_and_clipped(model: MatrixFactorization) -> None:
    out = list(predict_test_ids(model, [(1, 0, 0), (2, 1, 1), (3, 2, 2)]))

    assert out == [(1, pytest.approx(2.0)), (2, pytest.approx(3.5)), (3, pytest.approx(5.0))]


def test_trailing_junk_row_ends_the_file_without_error(model: MatrixFactorization, tmp_path) -> None:
    path = tmp_path / "test-ids.csv"
    path.write_text("Id,user,item\n1,0,0\n2,1,1\n3,2,2\nend of file,,\n")

    out = list(predict_test_ids(model, iter_test_ids(path)))

    assert [test_id for test_id, _ in out] == [1, 2, 3]
    assert [pred for _, pred in out] == pytest.approx([2.0, 3.5, 5.0])


def test_wide_row_after_the_ids_ends_the_file_without_error(model: MatrixFactorization, tmp_path) -> None:
    path = tmp_path / "test-ids.csv"
    path.write_text("Id,user,item\n1,0,0\n2,1,1\n3,0,1,2,2\n")

    assert [test_id for test_id, _ in predict_test_ids(model, iter_test_ids(path))] == [1, 2]


@pytest.mark.parametrize("triple", [(1, 3, 0), (1, 0, 3), (1, -1, 0)])
def test_ids_outside_the_tables_are_a_format_error(model: MatrixFactorization, triple) -> None:
    with pytest.raises(FormatError):
        list(predict_test_ids(model, [triple]))


def test_predictions_are_consumed_lazily(model: MatrixFactorization) -> None:
    def triples():
        yield (1, 0, 0)
        yield (3, 0, 0)
        raise AssertionError("read past the id break")

    assert len(list(predict_test_ids(model, triples()))) == 1


def test_write_submission_format(tmp_path) -> None:
    path = tmp_path / "submission.csv"

    n = write_submission(path, [(1, 3.25), (2, 5.0), (3, 1.0)])

    assert n == 3
    assert path.read_text().splitlines() == [
        "Id,Prediction",
        "1,3.250000",
        "2,5.000000",
        "3,1.000000",
    ]


def test_write_submission_with_no_rows_keeps_header(tmp_path) -> None:
    path = tmp_path / "submission.csv"

    assert write_submission(path, []) == 0
    assert path.read_text().splitlines() == ["Id,Prediction"]
