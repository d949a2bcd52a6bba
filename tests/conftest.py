import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from ecmetrics import LabeledMatrix


def _long_records(values, places, activities):
    rows = [
        {"country": c, "product": p, "export_value": float(values[i][j])}
        for i, c in enumerate(places)
        for j, p in enumerate(activities)
    ]
    return pd.DataFrame(rows)


@pytest.fixture
def scenario_records():
    """Two places, three activities: [[10, 0, 5], [0, 10, 5]]."""
    return _long_records([[10, 0, 5], [0, 10, 5]], ["A", "B"], ["x", "y", "z"])


@pytest.fixture
def trade_records():
    """Deterministic 7 x 9 trade table with strictly positive values."""
    rng = np.random.default_rng(42)
    places = [f"C{i}" for i in range(7)]
    activities = [f"P{j:02d}" for j in range(9)]
    # a size gradient on both axes plus noise gives a non trivial spectrum
    base = np.outer(np.linspace(1, 7, 7), np.linspace(9, 1, 9))
    values = base * rng.lognormal(mean=0.0, sigma=1.0, size=base.shape)
    return _long_records(values, places, activities)


@pytest.fixture
def nested_mcp():
    """Binary 4 x 5 presence matrix with no empty row or column."""
    values = np.array([
        [1, 1, 1, 1, 0],
        [1, 1, 1, 0, 0],
        [1, 1, 0, 0, 1],
        [1, 0, 0, 0, 0],
    ], dtype=np.int8)
    return LabeledMatrix(
        matrix=sp.csr_matrix(values),
        row_labels=["c1", "c2", "c3", "c4"],
        col_labels=["p1", "p2", "p3", "p4", "p5"],
        row_name="country",
        col_name="product",
    )


@pytest.fixture
def random_mcp():
    """Random 12 x 20 presence matrix, every place and activity present at least once."""
    rng = np.random.default_rng(7)
    values = (rng.random((12, 20)) < 0.35).astype(np.int8)
    for j in range(20):
        values[j % 12, j] = 1
    return LabeledMatrix(
        matrix=sp.csr_matrix(values),
        row_labels=[f"c{i:02d}" for i in range(12)],
        col_labels=[f"p{j:02d}" for j in range(20)],
        row_name="country",
        col_name="product",
    )
