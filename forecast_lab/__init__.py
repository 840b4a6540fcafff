"""
forecast_lab - A Python Library for ARIMA Time-Series Fitting and Forecasting
"""

__version__ = "1.0.0"

# =============================================================================
# EXCEPTIONS
# =============================================================================
from .exceptions import (
    ForecastLabError,
    InvalidDimensionError,
    DimensionMismatchError,
    IndexOutOfRangeError,
    SingularMatrixError,
    ObjectiveEvaluationError,
    CancelledError,
    ModelFitError,
    InvalidHorizonError,
    InvalidConfidenceLevelError,
)

# =============================================================================
# CORE TYPES
# =============================================================================
from .types import (
    Order,
    OptimizerStatus,
    FitMethod,
    OptimizerConfig,
    OptimizationResult,
    Forecast,
)

# =============================================================================
# LINEAR ALGEBRA
# =============================================================================
from .matrix import (
    Vector,
    Matrix,
    IdentityBuilder,
    MatrixBuilder,
)
from .decomposition import (
    LUDecomposition,
    CholeskyDecomposition,
    solve,
    inverse,
    least_squares,
)

# =============================================================================
# OPTIMIZATION
# =============================================================================
from .objective import (
    ObjectiveFunction,
    Function,
    ExpSin,
)
from .optimization import (
    Optimizer,
    NelderMeadOptimizer,
    BFGSOptimizer,
    minimize,
)

# =============================================================================
# TIME SERIES MODELS
# =============================================================================
from .timeseries import TimeSeries
from .models import (
    Model,
    ArimaOrder,
    ArimaModel,
    fit_arima,
)

# =============================================================================
# SIMULATION
# =============================================================================
from .simulation import (
    ArimaSimulator,
    simulate_arima,
)

# =============================================================================
# I/O
# =============================================================================
from .io import (
    series_from_table,
    matrix_from_table,
)

# =============================================================================
# PUBLIC API
# =============================================================================
__all__ = [
    "__version__",
    "ForecastLabError",
    "InvalidDimensionError",
    "DimensionMismatchError",
    "IndexOutOfRangeError",
    "SingularMatrixError",
    "ObjectiveEvaluationError",
    "CancelledError",
    "ModelFitError",
    "InvalidHorizonError",
    "InvalidConfidenceLevelError",
    "Order",
    "OptimizerStatus",
    "FitMethod",
    "OptimizerConfig",
    "OptimizationResult",
    "Forecast",
    "Vector",
    "Matrix",
    "IdentityBuilder",
    "MatrixBuilder",
    "LUDecomposition",
    "CholeskyDecomposition",
    "solve",
    "inverse",
    "least_squares",
    "ObjectiveFunction",
    "Function",
    "ExpSin",
    "Optimizer",
    "NelderMeadOptimizer",
    "BFGSOptimizer",
    "minimize",
    "TimeSeries",
    "Model",
    "ArimaOrder",
    "ArimaModel",
    "fit_arima",
    "ArimaSimulator",
    "simulate_arima",
    "series_from_table",
    "matrix_from_table",
]
