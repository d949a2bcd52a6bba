import logging
import pandas as pd
from tqdm import tqdm
from typing import List, Optional

from ecmetrics.matrix_processor import MatrixProcessorCA, build_mcp, _check_fields
from ecmetrics.economic_complexity import metrics_diversity_ubiquity, calc_eci_pci
from ecmetrics.relatedness_metrics import proximity
from ecmetrics.prediction_module import density, distance, calc_coi_cog

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = ["rca", "mcp", "diversity", "ubiquity", "density", "distance", "eci", "pci", "coi", "cog"]


def _indicator_tables(records: pd.DataFrame, value_field: str, activity_field: str, place_field: str,
                      threshold: float) -> List[pd.DataFrame]:
    # every table keyed by (place, activity), by place or by activity, in join order
    processor = MatrixProcessorCA(value_field, activity_field, place_field).load(records).compute_rca()
    df_rca = processor.get_rca_table()
    mcp = build_mcp(df_rca, activity_field, place_field, threshold)
    proximity_mat = proximity(mcp, activity_field, place_field)

    return [
        df_rca,
        metrics_diversity_ubiquity(mcp, activity_field, place_field, "diversity"),
        metrics_diversity_ubiquity(mcp, activity_field, place_field, "ubiquity"),
        density(mcp, proximity_mat, activity_field, place_field),
        distance(mcp, proximity_mat, activity_field, place_field),
        calc_eci_pci(mcp, activity_field, place_field),
        calc_coi_cog(mcp, proximity_mat, activity_field, place_field),
    ]


def _join_keys(table: pd.DataFrame, keys: List[str]) -> List[str]:
    return [k for k in keys if k in table.columns]


def complexity_metrics(records: pd.DataFrame,
                       value_field: str,
                       activity_field: str,
                       place_field: str,
                       threshold: float = 1.0,
                       time_field: Optional[str] = None,
                       progress: bool = False) -> pd.DataFrame:
    """
    Compute the full set of economic complexity indicators and join them onto the records.

    Runs RCA, presence matrix, diversity/ubiquity, proximity, density, distance,
    ECI/PCI and COI/COG, then left-joins every result onto ``records``. Records that
    received no RCA (e.g. places or activities with zero total value) keep nulls in
    the derived columns.

    Parameters
    ----------
      - records : pd.DataFrame
          Flow records with place, activity and value columns (and optionally a time column).
      - value_field : str
          Name of the value column.
      - activity_field : str
          Name of the activity column.
      - place_field : str
          Name of the place column.
      - threshold : float, default 1.0
          Inclusive RCA threshold of the presence matrix.
      - time_field : str, optional
          Name of a period column. If given, every period is computed independently.
      - progress : bool, default False
          Show a progress bar over the periods.

    Returns
    -------
      - pd.DataFrame
          ``records`` (same rows, same order) with the columns
          rca, mcp, diversity, ubiquity, density, distance, eci, pci, coi, cog.
    """
    _check_fields(value_field=value_field, activity_field=activity_field, place_field=place_field)
    if time_field is not None:
        _check_fields(time_field=time_field)
        if time_field not in records.columns:
            raise KeyError(f"Column '{time_field}' not found in the input data")
    clashing = [c for c in OUTPUT_COLUMNS if c in records.columns]
    if clashing:
        raise ValueError(f"Input data already has output columns {clashing}")

    if time_field is None:
        tables = _indicator_tables(records, value_field, activity_field, place_field, threshold)
        keys = [place_field, activity_field]
    else:
        periods = records.groupby(time_field, sort=True, observed=True)
        per_period = []
        for period, group in tqdm(periods, total=periods.ngroups, disable=not progress, desc="periods"):
            logger.debug("Computing period %s (%d records)", period, len(group))
            tables = _indicator_tables(group, value_field, activity_field, place_field, threshold)
            per_period.append([t.assign(**{time_field: period}) for t in tables])
        if not per_period:
            raise ValueError(f"No records with a valid '{time_field}' value")
        tables = [pd.concat(parts, ignore_index=True) for parts in zip(*per_period)]
        keys = [time_field, place_field, activity_field]

    ec_measures = records.copy()
    df_rca, rest = tables[0], tables[1:]
    ec_measures = ec_measures.merge(df_rca, on=_join_keys(df_rca, keys), how="left")

    # recomputed from the joined RCA so that mcp and rca always agree
    mcp = (ec_measures["rca"] >= threshold).astype("Int8")
    mcp[ec_measures["rca"].isna()] = pd.NA
    ec_measures["mcp"] = mcp

    for table in rest:
        ec_measures = ec_measures.merge(table, on=_join_keys(table, keys), how="left")

    ec_measures.index = records.index
    return ec_measures
