import pytest

from stepflow.conditions import DataFieldEvaluator


@pytest.fixture
def snapshot():
    return {
        "status": "running",
        "execution_data": {
            "amount": 1200,
            "urgent": True,
            "archived": False,
            "customer": {"tier": "gold"},
            "formula": "a==b",
        },
    }


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("urgent", True),
        ("archived", False),
        ("missing", False),
        ("not archived", True),
        ("not missing", True),
        ("not urgent", False),
        ("amount == 1200", True),
        ("amount != 1200", False),
        ("customer.tier == 'gold'", True),
        ("customer.tier == silver", False),
        ("customer.region != 'eu'", True),
        ("urgent == true", True),
        ("customer.tier != 'a==b'", True),
        ("customer.tier == 'gold!=silver'", False),
        ("formula == 'a==b'", True),
    ],
)
def test_data_field_expressions(snapshot, expression, expected):
    assert DataFieldEvaluator().evaluate(expression, snapshot) is expected


def test_same_input_same_answer(snapshot):
    evaluator = DataFieldEvaluator()
    results = {evaluator.evaluate("amount == 1200", snapshot) for _ in range(3)}
    assert results == {True}
    assert snapshot["execution_data"]["amount"] == 1200


def test_empty_snapshot_is_false():
    assert DataFieldEvaluator().evaluate("urgent", {}) is False


def test_missing_field_name_raises(snapshot):
    with pytest.raises(ValueError):
        DataFieldEvaluator().evaluate("== 3", snapshot)
