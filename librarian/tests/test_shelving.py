import pytest

from librarian.shelving import SHELF_CAPACITY, allocate_shelf, shelf_letter


@pytest.mark.parametrize(
    "count, expected",
    [(0, "H1"), (14, "H1"), (15, "H2"), (29, "H2"), (30, "H3")],
)
def test_allocate_history(count, expected):
    assert allocate_shelf("History", count) == expected


def test_capacity_constant():
    assert SHELF_CAPACITY == 15


def test_letters_and_placeholder():
    assert shelf_letter("Philosophy") == "F"
    assert shelf_letter("Unknown") == "X"
    assert shelf_letter("") == "X"
    assert shelf_letter("zines") == "Z"
    assert allocate_shelf("", 0) == "X1"


def test_custom_capacity_and_negative_count():
    assert allocate_shelf("Science", 4, capacity=2) == "S3"
    assert allocate_shelf("Science", -5) == "S1"


def test_invalid_capacity():
    with pytest.raises(ValueError):
        allocate_shelf("History", 0, capacity=0)
