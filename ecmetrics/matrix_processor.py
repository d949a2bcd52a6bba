import logging
import numpy as np
import pandas as pd
import scipy.sparse as sp
import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Hashable, Tuple, Union
from scipy.sparse import csr_matrix, issparse

logger = logging.getLogger(__name__)


class LabelMismatchError(ValueError):
    """Raised when two labelled matrices do not share the same axis ordering."""


def _check_fields(**fields: Any) -> None:
    # column names are mandatory: a swapped place/activity still gives a valid-looking result
    for name, value in fields.items():
        if not isinstance(value, str):
            raise ValueError(f"'{name}' must be a column name (str), got {value!r}")


@dataclass(frozen=True, eq=False)
class LabeledMatrix:
    """
    A 2D matrix together with the ordered labels of its rows and columns.

    The labels are the only source of truth for which place or activity a row or
    column refers to. Matrices may be dense numpy arrays or scipy CSR matrices.

    Parameters
    ----------
      - matrix : np.ndarray or csr_matrix
          The values, shape (len(row_labels), len(col_labels)).
      - row_labels : tuple
          Ordered labels of the rows (e.g. places).
      - col_labels : tuple
          Ordered labels of the columns (e.g. activities).
      - row_name : str
          Name of the row axis, used as column name when reshaping to tables.
      - col_name : str
          Name of the column axis.
    """
    matrix: Union[np.ndarray, csr_matrix]
    row_labels: Tuple[Hashable, ...]
    col_labels: Tuple[Hashable, ...]
    row_name: str
    col_name: str

    def __post_init__(self):
        object.__setattr__(self, "row_labels", tuple(self.row_labels))
        object.__setattr__(self, "col_labels", tuple(self.col_labels))
        if self.matrix.ndim != 2:
            raise ValueError(f"matrix must be 2D, got {self.matrix.ndim} dimensions")
        expected = (len(self.row_labels), len(self.col_labels))
        if tuple(self.matrix.shape) != expected:
            raise ValueError(
                f"matrix shape {tuple(self.matrix.shape)} does not match labels {expected}"
            )

    @property
    def shape(self) -> Tuple[int, int]:
        return tuple(self.matrix.shape)

    def toarray(self) -> np.ndarray:
        """Return a dense copy of the values."""
        if issparse(self.matrix):
            return self.matrix.toarray()
        return np.array(self.matrix)

    def to_wide(self) -> pd.DataFrame:
        """
        Wide table: one row per row label, the row axis as first column and one
        column per column label.
        """
        wide = pd.DataFrame(self.toarray(), columns=pd.Index(self.col_labels, name=self.col_name))
        wide.insert(0, self.row_name, pd.Index(self.row_labels))
        return wide

    def to_long(self, value_name: str) -> pd.DataFrame:
        """
        Long table with columns [row_name, col_name, value_name], sorted by
        (row label, column label).
        """
        index = pd.MultiIndex.from_product(
            [pd.Index(self.row_labels), pd.Index(self.col_labels)],
            names=[self.row_name, self.col_name],
        )
        long = pd.DataFrame({value_name: self.toarray().ravel()}, index=index).reset_index()
        return long.sort_values([self.row_name, self.col_name], kind="mergesort").reset_index(drop=True)

    def check_aligned(self, other: "LabeledMatrix", rows: bool = False, cols: bool = True,
                      on: str = "col") -> None:
        """
        Raise LabelMismatchError unless ``other`` is labelled like this matrix.

        Parameters
        ----------
          - other : LabeledMatrix
              Matrix to compare against.
          - rows : bool
              Compare the row labels of ``other`` with the labels of this matrix's ``on`` axis.
          - cols : bool
              Compare the column labels of ``other`` with the labels of this matrix's ``on`` axis.
          - on : {'row', 'col'}
              Which axis of this matrix provides the reference labels.
        """
        if on not in ("row", "col"):
            raise ValueError(f"Unknown axis '{on}'. Choose from 'row' or 'col'.")
        reference = self.row_labels if on == "row" else self.col_labels
        if rows and other.row_labels != reference:
            raise LabelMismatchError(
                f"row labels of the {other.shape} matrix do not match the {on} labels of the {self.shape} matrix"
            )
        if cols and other.col_labels != reference:
            raise LabelMismatchError(
                f"column labels of the {other.shape} matrix do not match the {on} labels of the {self.shape} matrix"
            )


def check_axes(matrix: LabeledMatrix, activity_field: str, place_field: str) -> None:
    _check_fields(activity_field=activity_field, place_field=place_field)
    if (matrix.row_name, matrix.col_name) != (place_field, activity_field):
        raise LabelMismatchError(
            f"matrix axes are ({matrix.row_name!r}, {matrix.col_name!r}), "
            f"expected ({place_field!r}, {activity_field!r})"
        )


class MatrixProcessorCA:
    """
    Processor for turning flow records (place, activity, value) into revealed
    comparative advantage (RCA) and into the binary presence matrix Mcp.

    Every processing step returns a new processor, the records passed to load()
    are never modified. Call get_rca_table() or get_matrix() to retrieve results.

    Parameters
    ----------
      - value_field : str
          Name of the numeric column holding the flow value (e.g. export value).
      - activity_field : str
          Name of the column identifying the activity (e.g. product code).
      - place_field : str
          Name of the column identifying the place (e.g. country code).
    """
    def __init__(self, value_field: str, activity_field: str, place_field: str) -> None:
        _check_fields(value_field=value_field, activity_field=activity_field, place_field=place_field)
        self.value_field = value_field
        self.activity_field = activity_field
        self.place_field = place_field

        self._original: pd.DataFrame = None
        self._rca: pd.DataFrame = None
        self._processed: LabeledMatrix = None

    def copy(self) -> "MatrixProcessorCA":
        """
        Copy routine
        :return: return the hard copy of the processor
        """
        return copy.deepcopy(self)

    # -----------------------------
    # Loading Methods
    # -----------------------------
    def load(self, input_data: Union[str, Path, pd.DataFrame], **kwargs) -> "MatrixProcessorCA":
        """
        Load flow records from a DataFrame or a file (csv, tsv, parquet, xlsx).

        Only the place, activity and value columns are kept.
        """
        records = self._load_records(input_data, **kwargs)
        fields = [self.place_field, self.activity_field, self.value_field]
        missing = [f for f in fields if f not in records.columns]
        if missing:
            raise KeyError(f"Columns {missing} not found in the input data")
        values = pd.to_numeric(records[self.value_field])
        if (values < 0).any():
            raise ValueError(f"Column '{self.value_field}' contains negative values")

        processor = self.copy()
        processor._original = records[fields].copy()
        processor._rca = None
        processor._processed = None
        return processor

    def _load_records(self, input_data, **kwargs) -> pd.DataFrame:
        if isinstance(input_data, pd.DataFrame):
            return input_data
        if isinstance(input_data, (str, Path)):
            return self._load_from_path(Path(input_data), **kwargs)
        raise TypeError(f"Unsupported input type: {type(input_data)}")

    def _load_from_path(self, path: Path, **kwargs) -> pd.DataFrame:
        path = path.resolve()
        ext = path.suffix.lower()
        dict_ext = {'.csv': ',', '.tsv': '\t'}
        if ext in dict_ext:
            if 'sep' not in kwargs:
                kwargs['sep'] = dict_ext[ext]
            return pd.read_csv(path, **kwargs)
        if ext == '.parquet':
            return pd.read_parquet(path, **kwargs)
        if ext in ['.xlsx', '.xls']:
            return pd.read_excel(path, **kwargs)
        raise ValueError(f"Unrecognized format: {ext}")

    # -----------------------------
    # Comparative Advantage Methods
    # -----------------------------
    def _drop_zero_totals(self, flows: pd.DataFrame) -> pd.DataFrame:
        place, activity, value = self.place_field, self.activity_field, self.value_field

        place_totals = flows.groupby(place, observed=True)[value].sum()
        activity_totals = flows.groupby(activity, observed=True)[value].sum()
        empty_places = place_totals.index[place_totals == 0]
        empty_activities = activity_totals.index[activity_totals == 0]

        if len(empty_places) or len(empty_activities):
            logger.warning(
                "Dropping %d places and %d activities with zero total value",
                len(empty_places), len(empty_activities),
            )
            flows = flows[~flows[place].isin(empty_places) & ~flows[activity].isin(empty_activities)]
        return flows

    def compute_rca(self) -> "MatrixProcessorCA":
        """
        Compute Balassa's Revealed Comparative Advantage for every observed
        (place, activity) pair.

            RCA(c, p) = (v_cp / sum_p v_cp) / (sum_c v_cp / sum_cp v_cp)

        Records of the same pair are summed first. Places or activities whose total
        value is zero are dropped with a warning.

        Returns
        -------
          - MatrixProcessorCA
              New processor holding the long RCA table and the wide RCA matrix.
        """
        if self._original is None:
            raise ValueError("No records loaded. Call load() first.")
        place, activity, value = self.place_field, self.activity_field, self.value_field

        flows = (
            self._original
            .groupby([place, activity], sort=True, observed=True)[value]
            .sum()
            .reset_index()
        )
        flows = self._drop_zero_totals(flows)

        total = flows[value].sum()
        by_place = flows.groupby(place, observed=True)[value].transform("sum")
        by_activity = flows.groupby(activity, observed=True)[value].transform("sum")
        flows = flows.assign(rca=(flows[value] / by_place) / (by_activity / total))

        rca_table = (
            flows[[place, activity, "rca"]]
            .sort_values([place, activity], kind="mergesort")
            .reset_index(drop=True)
        )
        logger.debug("RCA computed for %d (place, activity) pairs", len(rca_table))

        processor = self.copy()
        processor._rca = rca_table
        processor._processed = _reshape_wide(rca_table, activity, place)
        return processor

    # -----------------------------
    # Binarization
    # -----------------------------
    def binarize(self, threshold: float = 1.0) -> "MatrixProcessorCA":
        """
        Binarize the RCA matrix with the given (inclusive) threshold.
        """
        if self._rca is None:
            raise ValueError("RCA not computed. Call compute_rca() first.")
        processor = self.copy()
        processor._processed = build_mcp(self._rca, self.activity_field, self.place_field, threshold)
        return processor

    # -----------------------------
    # Accessors
    # -----------------------------
    def get_rca_table(self) -> pd.DataFrame:
        """
        Return the long RCA table [place, activity, 'rca'].
        """
        if self._rca is None:
            raise ValueError("RCA not computed. Call compute_rca() first.")
        return self._rca.copy()

    def get_matrix(self) -> LabeledMatrix:
        """
        Return the current processed matrix (RCA values or presence matrix).
        """
        return self._processed


def _reshape_wide(rca_table: pd.DataFrame, activity_field: str, place_field: str,
                  value_name: str = "rca", threshold: float = None) -> LabeledMatrix:
    # long -> wide, places and activities sorted; unobserved pairs stay NaN until thresholded
    wide = rca_table.pivot(index=place_field, columns=activity_field, values=value_name)
    wide = wide.sort_index(axis=0).sort_index(axis=1)
    if threshold is None:
        values = wide.fillna(0.0).to_numpy(dtype=float)
    else:
        # NaN >= threshold is False, so unobserved pairs are absent from Mcp
        values = (wide.to_numpy(dtype=float) >= threshold).astype(np.int8)
    return LabeledMatrix(
        matrix=sp.csr_matrix(values),
        row_labels=wide.index,
        col_labels=wide.columns,
        row_name=place_field,
        col_name=activity_field,
    )


def rca(records: pd.DataFrame, value_field: str, activity_field: str, place_field: str) -> pd.DataFrame:
    """
    Revealed Comparative Advantage of every observed (place, activity) pair.

    Parameters
    ----------
      - records : pd.DataFrame
          Flow records.
      - value_field : str
          Name of the value column.
      - activity_field : str
          Name of the activity column.
      - place_field : str
          Name of the place column.

    Returns
    -------
      - pd.DataFrame
          Columns [place_field, activity_field, 'rca'] sorted by (place, activity).
    """
    processor = MatrixProcessorCA(value_field, activity_field, place_field)
    return processor.load(records).compute_rca().get_rca_table()


def build_mcp(rca_table: pd.DataFrame, activity_field: str, place_field: str,
              threshold: float = 1.0) -> LabeledMatrix:
    """
    Build the binary presence matrix Mcp from a long RCA table.

    Mcp[c, p] = 1 if RCA(c, p) >= threshold, 0 otherwise. Pairs missing from the
    RCA table are 0.

    Returns
    -------
      - LabeledMatrix
          int8 CSR matrix, places (sorted) x activities (sorted).
    """
    _check_fields(activity_field=activity_field, place_field=place_field)
    return _reshape_wide(rca_table, activity_field, place_field, threshold=threshold)
