from .matrix_processor import LabeledMatrix, LabelMismatchError, MatrixProcessorCA, rca, build_mcp
from .economic_complexity import (
    EconomicComplexity,
    calc_eci_pci,
    compute_diversity_ubiquity,
    eci_pci_vectors,
    metrics_diversity_ubiquity,
    normalize,
)
from .relatedness_metrics import RelatednessMetrics, proximity
from .prediction_module import ECPredictor, density, distance, calc_coi_cog
from .pipeline import complexity_metrics
