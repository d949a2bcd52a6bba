"""Tests for ecmetrics.economic_complexity: diversity, ubiquity, ECI and PCI."""

import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from ecmetrics import (
    EconomicComplexity,
    LabeledMatrix,
    LabelMismatchError,
    calc_eci_pci,
    compute_diversity_ubiquity,
    eci_pci_vectors,
    metrics_diversity_ubiquity,
    normalize,
)
from ecmetrics.economic_complexity import _eigen_order, place_similarity


def _mean_pci_over_present(mcp, pci):
    M = mcp.toarray().astype(float)
    return M.dot(pci) / M.sum(axis=1)


# ═══════════════════════════════════════════════════════════════════
# 1. Diversity / ubiquity
# ═══════════════════════════════════════════════════════════════════

class TestDiversityUbiquity:

    def test_scenario(self):
        mcp = LabeledMatrix(sp.csr_matrix(np.array([[1, 0, 1], [0, 1, 1]], dtype=np.int8)),
                            ["A", "B"], ["x", "y", "z"], "country", "product")
        diversity, ubiquity = compute_diversity_ubiquity(mcp)
        np.testing.assert_array_equal(diversity, [2, 2])
        np.testing.assert_array_equal(ubiquity, [1, 1, 2])

    def test_sums_agree_with_ones_count(self, random_mcp):
        diversity, ubiquity = compute_diversity_ubiquity(random_mcp)
        assert diversity.sum() == ubiquity.sum() == random_mcp.matrix.nnz

    def test_selector(self, nested_mcp):
        div = metrics_diversity_ubiquity(nested_mcp, "product", "country", "diversity")
        ubi = metrics_diversity_ubiquity(nested_mcp, "product", "country", "ubiquity")
        assert list(div.columns) == ["country", "diversity"]
        assert list(ubi.columns) == ["product", "ubiquity"]
        assert list(div.diversity) == [4, 3, 3, 1]
        assert list(ubi.ubiquity) == [4, 3, 2, 1, 1]

    def test_unknown_selector_raises(self, nested_mcp):
        with pytest.raises(ValueError):
            metrics_diversity_ubiquity(nested_mcp, "product", "country", "degree")

    def test_swapped_axes_raise(self, nested_mcp):
        with pytest.raises(LabelMismatchError):
            metrics_diversity_ubiquity(nested_mcp, "country", "product", "diversity")


# ═══════════════════════════════════════════════════════════════════
# 2. Place similarity and eigenvalue ordering
# ═══════════════════════════════════════════════════════════════════

class TestPlaceSimilarity:

    def test_row_stochastic(self, random_mcp):
        Mcc = place_similarity(random_mcp.matrix.astype(float))
        np.testing.assert_allclose(Mcc.sum(axis=1), 1.0, atol=1e-12)

    def test_matches_broadcast_formulation(self, random_mcp):
        M = random_mcp.toarray().astype(float)
        diversity, ubiquity = M.sum(axis=1), M.sum(axis=0)
        broadcast = (M / diversity[:, None]).dot((M / ubiquity[None, :]).T)
        np.testing.assert_allclose(place_similarity(sp.csr_matrix(M)), broadcast, atol=1e-12)

    def test_eigen_order_descending_real_then_imaginary(self):
        eigvals = np.array([0.2 + 0.0j, 1.0 + 0.0j, 0.5 - 0.1j, 0.5 + 0.1j])
        assert list(_eigen_order(eigvals)) == [1, 3, 2, 0]


# ═══════════════════════════════════════════════════════════════════
# 3. ECI / PCI
# ═══════════════════════════════════════════════════════════════════

class TestEciPci:

    @pytest.mark.parametrize("fixture", ["nested_mcp", "random_mcp"])
    def test_eci_standardized(self, fixture, request):
        mcp = request.getfixturevalue(fixture)
        eci, _ = eci_pci_vectors(mcp)
        assert eci.mean() == pytest.approx(0.0, abs=1e-9)
        assert eci.std(ddof=1) == pytest.approx(1.0, abs=1e-9)

    @pytest.mark.parametrize("fixture", ["nested_mcp", "random_mcp"])
    def test_eci_is_mean_pci_of_present_activities(self, fixture, request):
        mcp = request.getfixturevalue(fixture)
        eci, pci = eci_pci_vectors(mcp)
        np.testing.assert_allclose(_mean_pci_over_present(mcp, pci), eci, atol=1e-8)

    def test_sign_follows_diversity(self, nested_mcp, random_mcp):
        for mcp in (nested_mcp, random_mcp):
            eci, _ = eci_pci_vectors(mcp)
            diversity, _ = compute_diversity_ubiquity(mcp)
            assert np.corrcoef(diversity, eci)[0, 1] > 0

    def test_deterministic(self, random_mcp):
        first = eci_pci_vectors(random_mcp)
        second = eci_pci_vectors(random_mcp)
        np.testing.assert_array_equal(first[0], second[0])
        np.testing.assert_array_equal(first[1], second[1])

    def test_empty_activity_is_excluded(self, nested_mcp):
        values = np.hstack([nested_mcp.toarray(), np.zeros((4, 1), dtype=np.int8)])
        padded = LabeledMatrix(sp.csr_matrix(values), nested_mcp.row_labels,
                               nested_mcp.col_labels + ("p6",), "country", "product")
        eci, pci = eci_pci_vectors(padded)
        ref_eci, ref_pci = eci_pci_vectors(nested_mcp)

        assert np.isnan(pci[-1])
        np.testing.assert_allclose(eci, ref_eci, atol=1e-10)
        np.testing.assert_allclose(pci[:-1], ref_pci, atol=1e-10)

    def test_empty_place_is_excluded(self, nested_mcp):
        values = np.vstack([nested_mcp.toarray(), np.zeros((1, 5), dtype=np.int8)])
        padded = LabeledMatrix(sp.csr_matrix(values), nested_mcp.row_labels + ("c5",),
                               nested_mcp.col_labels, "country", "product")
        eci, pci = eci_pci_vectors(padded)
        assert np.isnan(eci[-1])
        assert np.isfinite(eci[:-1]).all()
        assert np.isfinite(pci).all()

    def test_single_place_raises(self):
        mcp = LabeledMatrix(sp.csr_matrix(np.ones((1, 3), dtype=np.int8)), ["A"], ["x", "y", "z"],
                            "country", "product")
        with pytest.raises(ValueError):
            eci_pci_vectors(mcp)

    def test_cached_on_instance(self, nested_mcp):
        ec = EconomicComplexity(nested_mcp)
        eci, pci = ec.get_eci_pci()
        assert ec.get_eci_pci()[0] is eci
        assert ec.get_eci_pci(force=True)[0] is not eci

    def test_table(self, nested_mcp):
        table = calc_eci_pci(nested_mcp, "product", "country")
        assert list(table.columns) == ["country", "product", "eci", "pci"]
        assert len(table) == 4 * 5
        # eci constant within a place, pci constant within an activity
        assert (table.groupby("country").eci.nunique() == 1).all()
        assert (table.groupby("product").pci.nunique() == 1).all()
        expected = table.sort_values(["country", "product"]).reset_index(drop=True)
        pd.testing.assert_frame_equal(table, expected)


# ═══════════════════════════════════════════════════════════════════
# 4. normalize
# ═══════════════════════════════════════════════════════════════════

class TestNormalize:

    def test_sum(self):
        assert normalize(np.array([1.0, 3.0]), "sum") == pytest.approx([0.25, 0.75])

    def test_zscore_uses_sample_std(self):
        out = normalize(pd.Series([1.0, 2.0, 3.0]), "zscore")
        assert list(out) == pytest.approx([-1.0, 0.0, 1.0])

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            normalize(np.array([1.0]), "median")
