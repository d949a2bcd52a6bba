import logging
import numpy as np
import pandas as pd
from typing import Tuple
from scipy.linalg import eig, pinv
from scipy.sparse import csr_matrix, diags, issparse

from ecmetrics.matrix_processor import LabeledMatrix, check_axes

logger = logging.getLogger(__name__)


def normalize(vector: np.ndarray | pd.Series, normalization: str = 'zscore') -> np.ndarray | pd.Series:
    """
    Normalize a numeric vector or series using a specified method.

    Parameters
    ----------
      - vector : np.ndarray or pd.Series
          The input array or series to normalize
      - normalization : str
          One of 'sum' (divide by sum), 'max' (divide by max),
                 'mean' (divide by mean), or 'zscore' (standard score, sample std).

    Returns
    -------
      - np.ndarray or pd.Series
          The normalized array or series of the same type.
    """
    if normalization == 'sum':
        return vector / vector.sum(0)
    elif normalization == 'max':
        return vector / vector.max(0)
    elif normalization == 'mean':
        return vector / vector.mean(0)
    elif normalization == 'zscore':
        return _standardize(vector, vector)
    else:
        raise ValueError(
            f"Unknown normalization '{normalization}'. "
            "Choose from 'sum', 'max', 'mean', or 'zscore'."
        )


def _standardize(vector, reference):
    # centre and scale with the mean and sample std of ``reference``
    return (vector - reference.mean(0)) / reference.std(0, ddof=1)


def compute_diversity_ubiquity(matrix) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute diversity and ubiquity vectors of a binary matrix.

    Diversity is the number of activities per place (row sums),
    and ubiquity the number of places per activity (column sums).

    Returns
    -------
      - tuple
          diversity: numpy.ndarray of shape (n_places,)
          ubiquity: numpy.ndarray of shape (n_activities,)
    """
    if isinstance(matrix, LabeledMatrix):
        matrix = matrix.matrix
    diversity = np.asarray(matrix.sum(axis=1)).ravel()
    ubiquity = np.asarray(matrix.sum(axis=0)).ravel()
    return diversity, ubiquity


def _eigen_order(eigvals: np.ndarray) -> np.ndarray:
    # descending real part; ties: larger imaginary part first, then original position
    return np.lexsort((np.arange(len(eigvals)), -eigvals.imag, -eigvals.real))


def place_similarity(matrix: csr_matrix) -> np.ndarray:
    """
    Place-place transition matrix Mcc = D^-1 M U^-1 M^T.

    D and U are the diagonal diversity and ubiquity matrices. Mcc is row-stochastic
    when no place or activity is empty.
    """
    diversity, ubiquity = compute_diversity_ubiquity(matrix)
    with np.errstate(divide='ignore'):
        inverse_div = diags(np.where(diversity != 0, 1.0 / diversity, 0.0))
        inverse_ubi = diags(np.where(ubiquity != 0, 1.0 / ubiquity, 0.0))
    Mcc = inverse_div.dot(matrix).dot(inverse_ubi).dot(matrix.transpose())
    return Mcc.toarray() if issparse(Mcc) else np.asarray(Mcc)


def eci_pci_vectors(matrix) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute the Economic Complexity Index (ECI) and Product Complexity Index (PCI)
    of a binary place-activity matrix with the spectral method.

    The eigenvector of Mcc = D^-1 M U^-1 M^T associated with the second largest
    eigenvalue (by real part) gives the place vector k_c. The activity vector is
    k_p = pinv(M) D k_c. The sign is fixed so that ECI correlates positively with
    diversity, and PCI is standardized with the mean and std of k_c so that the ECI
    of a place equals the mean PCI of the activities it is present in.

    Places with zero diversity and activities with zero ubiquity are left out of
    the decomposition and get NaN.

    Parameters
    ----------
      - matrix : csr_matrix, np.ndarray or LabeledMatrix
          Binary place-activity matrix.

    Returns
    -------
      - tuple
          (eci, pci) arrays of shape (n_places,) and (n_activities,).

    Reference
    ---------
      - Hidalgo C. and Hausmann R., *The building blocks of economic complexity*, PNAS 26 (2009)
      - Hausmann R. et al., *The Atlas of Economic Complexity*, MIT Press (2014)
    """
    if isinstance(matrix, LabeledMatrix):
        matrix = matrix.matrix
    Mcp = csr_matrix(matrix, dtype=float)
    diversity, ubiquity = compute_diversity_ubiquity(Mcp)

    row_mask = diversity > 0
    col_mask = ubiquity > 0
    if not row_mask.all() or not col_mask.all():
        logger.warning(
            "Excluding %d places with zero diversity and %d activities with zero ubiquity "
            "from the ECI/PCI computation",
            (~row_mask).sum(), (~col_mask).sum(),
        )
    submat = Mcp[row_mask][:, col_mask]
    if submat.shape[0] < 2:
        raise ValueError(f"ECI/PCI need at least two places with presence, got {submat.shape[0]}")
    div = diversity[row_mask]

    Mcc = place_similarity(submat)
    eigvals, eigvecs = eig(Mcc)
    second = _eigen_order(eigvals)[1]
    if eigvals[second].imag != 0:
        logger.warning("Selected eigenvalue %s is complex, using the real part of its eigenvector",
                       eigvals[second])
    logger.debug("Mcc shape %s, second eigenvalue %s", Mcc.shape, eigvals[second])
    kc = np.real(eigvecs[:, second])

    kp = pinv(submat.toarray()).dot(div * kc)

    # sign convention: higher diversity, higher ECI
    with np.errstate(invalid='ignore', divide='ignore'):
        corr = np.corrcoef(div, kc)[0, 1]
    sign = -1.0 if corr < 0 else 1.0

    eci_sub = sign * _standardize(kc, kc)
    pci_sub = sign * _standardize(kp, kc)
    # recentre both on the standardized ECI, keeps ECI = mean PCI over present activities
    pci_sub = _standardize(pci_sub, eci_sub)
    eci_sub = _standardize(eci_sub, eci_sub)

    eci = np.full(Mcp.shape[0], np.nan)
    pci = np.full(Mcp.shape[1], np.nan)
    eci[row_mask] = eci_sub
    pci[col_mask] = pci_sub
    return eci, pci


class EconomicComplexity:
    """
    Degree-based and spectral complexity metrics of a binary place-activity
    presence matrix.

    Main functionalities include:
    - Diversity (place degree) and Ubiquity (activity degree)
    - Economic Complexity Index (ECI) and Product Complexity Index (PCI)

    Results are cached on the instance; the presence matrix is never modified.
    """

    def __init__(self, mcp: LabeledMatrix) -> None:
        """
        Parameters
        ----------
          - mcp : LabeledMatrix
              Binary presence matrix, places x activities.
        """
        if not isinstance(mcp, LabeledMatrix):
            raise TypeError(f"mcp must be a LabeledMatrix, got {type(mcp)}")
        self.mcp = mcp
        self.shape = mcp.shape
        self._empty_metrics()

    def _empty_metrics(self):
        # Placeholders for ubiquity and diversity
        self.diversity = None
        self.ubiquity = None

        # Placeholders for Economic Complexity Index (ECI) and Product Complexity Index (PCI)
        self.eci = None
        self.pci = None

    def get_diversity_ubiquity(self, force: bool = False, aspandas: bool = False) -> tuple:
        """
        Compute and optionally return diversity and ubiquity vectors.

        Parameters
        ----------
          - force : bool, default False
              If True, forces recomputation even if already cached.
          - aspandas : bool, default False
              If True, returns results as pandas DataFrames.

        Returns
        -------
          - tuple
              diversity and ubiquity vectors as (np.ndarray, np.ndarray) or (pd.DataFrame, pd.DataFrame).
        """
        if self.diversity is None or self.ubiquity is None or force:
            self.diversity, self.ubiquity = compute_diversity_ubiquity(self.mcp.matrix)

        if aspandas:
            div = pd.DataFrame({self.mcp.row_name: pd.Index(self.mcp.row_labels), "diversity": self.diversity})
            ubi = pd.DataFrame({self.mcp.col_name: pd.Index(self.mcp.col_labels), "ubiquity": self.ubiquity})
            return div, ubi

        return self.diversity, self.ubiquity

    def get_eci_pci(self, force: bool = False, aspandas: bool = False) -> tuple:
        """
        Compute ECI and PCI with the spectral method.

        Parameters
        ----------
          - force : bool
              If True, recompute even if cached.
          - aspandas : bool
              If True, return pandas DataFrames instead of numpy arrays.

        Returns
        -------
          - tuple: (eci, pci)
        """
        if self.eci is None or self.pci is None or force:
            self.eci, self.pci = eci_pci_vectors(self.mcp.matrix)

        if aspandas:
            eci_df = pd.DataFrame({self.mcp.row_name: pd.Index(self.mcp.row_labels), "eci": self.eci})
            pci_df = pd.DataFrame({self.mcp.col_name: pd.Index(self.mcp.col_labels), "pci": self.pci})
            return eci_df, pci_df

        return self.eci, self.pci


############################
########  Wrappers  ########
############################

def metrics_diversity_ubiquity(mcp: LabeledMatrix, activity_field: str, place_field: str,
                               metric: str) -> pd.DataFrame:
    """
    Diversity per place or ubiquity per activity of the presence matrix.

    Parameters
    ----------
      - mcp : LabeledMatrix
          Binary presence matrix from build_mcp().
      - activity_field : str
          Name of the activity column.
      - place_field : str
          Name of the place column.
      - metric : {'diversity', 'ubiquity'}
          Which vector to return.

    Returns
    -------
      - pd.DataFrame
          [place_field, 'diversity'] or [activity_field, 'ubiquity'].
    """
    if metric not in ("diversity", "ubiquity"):
        raise ValueError(f"Unsupported metric '{metric}'. Choose from: diversity, ubiquity.")
    check_axes(mcp, activity_field, place_field)
    div, ubi = EconomicComplexity(mcp).get_diversity_ubiquity(aspandas=True)
    return div if metric == "diversity" else ubi


def calc_eci_pci(mcp: LabeledMatrix, activity_field: str, place_field: str) -> pd.DataFrame:
    """
    ECI and PCI as a cross-joined table.

    Returns
    -------
      - pd.DataFrame
          [place_field, activity_field, 'eci', 'pci'] sorted by (place, activity).
    """
    check_axes(mcp, activity_field, place_field)
    eci_df, pci_df = EconomicComplexity(mcp).get_eci_pci(aspandas=True)
    return (
        eci_df.merge(pci_df, how="cross")[[place_field, activity_field, "eci", "pci"]]
        .sort_values([place_field, activity_field], kind="mergesort")
        .reset_index(drop=True)
    )
