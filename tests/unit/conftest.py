from __future__ import annotations

import pytest

from fakes import InMemoryPositionRepository, InMemoryTable


@pytest.fixture
def category_table() -> InMemoryTable:
    """Group {category_id: 5} holds A(1), B(2), C(3); group 7 holds X(1), Y(2)."""
    return InMemoryTable(
        [
            {"id": 1, "name": "A", "category_id": 5, "position": 1},
            {"id": 2, "name": "B", "category_id": 5, "position": 2},
            {"id": 3, "name": "C", "category_id": 5, "position": 3},
            {"id": 10, "name": "X", "category_id": 7, "position": 1},
            {"id": 11, "name": "Y", "category_id": 7, "position": 2},
        ]
    )


@pytest.fixture
def repository(category_table: InMemoryTable) -> InMemoryPositionRepository:
    return InMemoryPositionRepository(category_table)
