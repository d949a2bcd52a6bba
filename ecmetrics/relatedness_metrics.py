import logging
import numpy as np
from scipy.sparse import csr_matrix

from ecmetrics.matrix_processor import LabeledMatrix, check_axes

logger = logging.getLogger(__name__)


class RelatednessMetrics:
    """
    This class implements the co-occurrence based relatedness projections of a
    binary place-activity presence matrix.

    Main functionalities include:
    - Cooccurrence matrix
    - Proximity network (Hidalgo et al. 2007)

    Both layers can be projected: the column layer (activity-activity, the default)
    or the row layer (place-place).
    """
    def __init__(self, mcp: LabeledMatrix):
        """
        Parameters
        ----------
          - mcp : LabeledMatrix
              Binary presence matrix, places x activities.
        """
        if not isinstance(mcp, LabeledMatrix):
            raise TypeError(f"mcp must be a LabeledMatrix, got {type(mcp)}")
        self.mcp = mcp
        self._processed = csr_matrix(mcp.matrix, dtype=np.int64)

    ########################################
    ########## Internal Methods ############
    ########################################

    def _layer(self, rows: bool) -> csr_matrix:
        # nodes of the projected layer on the rows
        return self._processed if rows else self._processed.T.tocsr()

    def _cooccurrence(self, rows: bool = False) -> csr_matrix:
        """
        Compute the cooccurrence matrix for one layer of the bipartite network.

        Parameters
        ----------
        - rows : bool, optional
            If True, compute cooccurrence on the row-layer; if False, on the column-layer.

        Returns
        -------
        - csr_matrix
            Cooccurrence matrix (square, sparse) of dimensions depending on the chosen layer.
        """
        A = self._layer(rows)
        return A.dot(A.T).tocsr()

    def _proximity(self, rows: bool = False) -> np.ndarray:
        """
        Compute the proximity network from a bipartite network.
        Introduced by Hidalgo et al. (2007)

            phi(i, j) = sum_c M_ci M_cj / max(u_i, u_j)

        i.e. the minimum of the two conditional probabilities of co-presence.

        Parameters
        ----------
        - rows : bool, optional
            If True, compute proximity for row-layer; if False, for column-layer.

        Returns
        -------
        - np.ndarray
            Dense symmetric proximity matrix. Nodes with zero degree get a zero row and column.
        """
        A = self._layer(rows)
        cooc = A.dot(A.T).toarray().astype(float)
        degree = np.asarray(A.sum(axis=1)).ravel().astype(float)

        ubi_max = np.maximum.outer(degree, degree)
        with np.errstate(divide='ignore'):
            weights = np.where(ubi_max != 0, 1.0 / ubi_max, 0.0)
        if (degree == 0).any():
            logger.warning("%d nodes never present: their proximity is set to 0", (degree == 0).sum())

        return cooc * weights

    ############################################
    ########    Projection wrappers    #########
    ############################################

    def get_projection(self, rows: bool = False, projection_method: str = "proximity") -> LabeledMatrix:
        """
        Compute a projection matrix of the binary bipartite input.

        Parameters:
            rows: boolean, if True projects the row layer (places), if False the column layer (activities)
            projection_method: string, ['cooccurrence', 'proximity']

        Returns:
            LabeledMatrix: square matrix labelled with the projected layer on both axes
        """
        if projection_method == "cooccurrence":
            values = self._cooccurrence(rows=rows)
        elif projection_method == "proximity":
            values = self._proximity(rows=rows)
        else:
            raise ValueError(
                f"Unsupported method {projection_method}. Choose from: cooccurrence, proximity.")

        labels = self.mcp.row_labels if rows else self.mcp.col_labels
        name = self.mcp.row_name if rows else self.mcp.col_name
        return LabeledMatrix(matrix=values, row_labels=labels, col_labels=labels,
                             row_name=name, col_name=name)


def proximity(mcp: LabeledMatrix, activity_field: str, place_field: str) -> LabeledMatrix:
    """
    Activity-activity proximity matrix of a presence matrix.

    Returns
    -------
      - LabeledMatrix
          Dense symmetric matrix labelled with the activities on both axes.
    """
    check_axes(mcp, activity_field, place_field)
    return RelatednessMetrics(mcp).get_projection(rows=False, projection_method="proximity")
