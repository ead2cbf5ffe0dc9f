"""Shared pytest fixtures for table, view and host tests."""

import pytest

from pivot_host.engine import PolarsEngine
from pivot_host.model.table import Table


@pytest.fixture
def engine():
    """A fresh engine per test so handle accounting is isolated."""
    return PolarsEngine()


@pytest.fixture
def sales_rows():
    return [
        {"region": "north", "product": "apple", "units": 3, "price": 1.5},
        {"region": "north", "product": "pear", "units": 5, "price": 2.25},
        {"region": "south", "product": "apple", "units": 7, "price": 1.25},
        {"region": "south", "product": "pear", "units": 1, "price": 2.75},
        {"region": "west", "product": "apple", "units": 4, "price": 1.75},
    ]


@pytest.fixture
def sales_table(engine, sales_rows):
    return Table.create(sales_rows, engine=engine)
