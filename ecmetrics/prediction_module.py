import logging
import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix
from typing import Tuple

from ecmetrics.matrix_processor import LabeledMatrix, check_axes
from ecmetrics.economic_complexity import EconomicComplexity

logger = logging.getLogger(__name__)


class ECPredictor:
    """
    ECPredictor scores the opportunities of every place in every activity from
    the presence matrix M (places x activities) and the proximity matrix B among
    activities:

    1. Density: (M @ B) / sum(B), the proximity-weighted share of a place's current
       activities around a target activity.
    2. Distance: ((1 - M) @ B) / sum(B), the same weighting over the activities the
       place does not have.
    3. Complexity Outlook Index (COI) and Complexity Outlook Gain (COG), which weight
       the missing activities by their PCI.

    The normalisation sum(B) is the total proximity of each destination activity;
    activities with no proximity mass are divided by 1.
    """
    def __init__(self, mcp: LabeledMatrix, proximity_mat: LabeledMatrix):
        """
        Inizialize the ECPredictor with a binary presence matrix and a proximity matrix.

        Parameters
        ----------
          - mcp: LabeledMatrix
              binary presence matrix (places x activities)
          - proximity_mat: LabeledMatrix
              proximity matrix (activities x activities), labelled like the columns of mcp
        """
        if not isinstance(mcp, LabeledMatrix) or not isinstance(proximity_mat, LabeledMatrix):
            raise TypeError("mcp and proximity_mat must be LabeledMatrix instances")
        mcp.check_aligned(proximity_mat, rows=True, cols=True, on="col")

        self.mcp = mcp
        self.M = csr_matrix(mcp.matrix, dtype=float)
        self.B = proximity_mat.toarray().astype(float)
        self.M_hat = None

    def _proximity_mass(self) -> np.ndarray:
        B_sum = self.B.sum(axis=1)
        B_sum[B_sum == 0] = 1  # avoid division by zero
        return B_sum

    def _labelled(self, values: np.ndarray) -> LabeledMatrix:
        return LabeledMatrix(matrix=values, row_labels=self.mcp.row_labels, col_labels=self.mcp.col_labels,
                             row_name=self.mcp.row_name, col_name=self.mcp.col_name)

    def predict_network(self, complement: bool = False) -> np.ndarray:
        """
        Predict scores using (M @ B) / sum(B), or ((1 - M) @ B) / sum(B) if complement=True.

        Returns
        -------
          - M_hat: np.array
              predicted scores matrix (places x activities)
        """
        M = 1.0 - self.M.toarray() if complement else self.M
        MB = np.asarray(M @ self.B)
        # denominator is indexed by the destination activity, i.e. broadcast over columns
        self.M_hat = MB / self._proximity_mass()
        logger.debug("Prediction matrix shape: %s", self.M_hat.shape)
        return self.M_hat

    def predict_density(self) -> LabeledMatrix:
        """
        Density of every (place, activity) pair.
        """
        return self._labelled(self.predict_network(complement=False))

    def predict_distance(self) -> LabeledMatrix:
        """
        Distance of every (place, activity) pair.
        """
        return self._labelled(self.predict_network(complement=True))

    def get_coi_cog(self, pci: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Complexity Outlook Index and Complexity Outlook Gain.

            coi(c)    = sum_p density(c, p) (1 - M_cp) pci(p)
            cog(c, p) = sum_p' [(1 - M_cp') pci(p') / sum(B)(p')] B(p', p)

        Parameters
        ----------
          - pci: np.array
              Product Complexity Index, one value per activity. NaN entries (activities
              excluded from the spectral solver) contribute 0.

        Returns
        -------
          - coi: np.array of shape (n_places,)
          - cog: np.array of shape (n_places, n_activities)
        """
        pci = np.asarray(pci, dtype=float)
        if pci.shape != (self.M.shape[1],):
            raise ValueError(f"pci must have shape ({self.M.shape[1]},), got {pci.shape}")
        pci = np.where(np.isnan(pci), 0.0, pci)

        absent = 1.0 - self.M.toarray()
        density = self.predict_network(complement=False)

        coi = (density * absent).dot(pci)
        cog = ((absent * pci) / self._proximity_mass()).dot(self.B)
        return coi, cog


def density(mcp: LabeledMatrix, proximity_mat: LabeledMatrix, activity_field: str,
            place_field: str) -> pd.DataFrame:
    """
    Density as a long table [place_field, activity_field, 'density'] sorted by (place, activity).
    """
    check_axes(mcp, activity_field, place_field)
    return ECPredictor(mcp, proximity_mat).predict_density().to_long("density")


def distance(mcp: LabeledMatrix, proximity_mat: LabeledMatrix, activity_field: str,
             place_field: str) -> pd.DataFrame:
    """
    Distance as a long table [place_field, activity_field, 'distance'] sorted by (place, activity).
    """
    check_axes(mcp, activity_field, place_field)
    return ECPredictor(mcp, proximity_mat).predict_distance().to_long("distance")


def calc_coi_cog(mcp: LabeledMatrix, proximity_mat: LabeledMatrix, activity_field: str,
                 place_field: str) -> pd.DataFrame:
    """
    COI and COG as a cross-joined table.

    PCI is computed from ``mcp`` with the spectral solver.

    Returns
    -------
      - pd.DataFrame
          [place_field, activity_field, 'coi', 'cog'] sorted by (place, activity),
          coi is constant within a place.
    """
    check_axes(mcp, activity_field, place_field)
    predictor = ECPredictor(mcp, proximity_mat)
    _, pci = EconomicComplexity(mcp).get_eci_pci()
    coi, cog = predictor.get_coi_cog(pci)

    coi_df = pd.DataFrame({place_field: pd.Index(mcp.row_labels), "coi": coi})
    cog_df = predictor._labelled(cog).to_long("cog")
    return (
        cog_df.merge(coi_df, on=place_field, how="left")[[place_field, activity_field, "coi", "cog"]]
        .sort_values([place_field, activity_field], kind="mergesort")
        .reset_index(drop=True)
    )
