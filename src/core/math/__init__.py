"""
Core math modules для Orbital engine

Математические примитивы, инвариант sphere/torus и солвер свапа.
"""

# Numerical Safeguards
from src.core.math.numerical_safeguards import (
    # Epsilon constants
    EPS_CALC,
    EPS_FLOAT_COMPARE_ABS,
    EPS_FLOAT_COMPARE_REL,
    EPS_PRICE,
    # Safe division
    denom_safe_signed,
    safe_divide,
    safe_sqrt,
    # NaN/Inf sanitization
    is_valid_float,
    sanitize_float,
    # Epsilon comparisons
    is_close,
    # Utilities
    clamp,
    # Validation
    validate_in_range,
    validate_non_negative,
    validate_positive,
)

# Invariant
from src.core.math.invariant import (
    EMPTY_TICKS,
    ConsolidatedTickState,
    InvariantRegime,
    compute_invariant,
    effective_boundary_radius,
    orthogonal_magnitude,
    projection,
    spot_price,
    torus_center,
    torus_gradient,
    torus_value,
)

# Swap Solver
from src.core.math.swap_solver import (
    RESERVE_FLOOR,
    SolverConfig,
    SwapSolution,
    apply_swap_to_sums,
    solve_swap,
)

__all__ = [
    # Numerical Safeguards: Epsilon constants
    "EPS_CALC",
    "EPS_FLOAT_COMPARE_ABS",
    "EPS_FLOAT_COMPARE_REL",
    "EPS_PRICE",
    # Numerical Safeguards: Safe division
    "denom_safe_signed",
    "safe_divide",
    "safe_sqrt",
    # Numerical Safeguards: NaN/Inf sanitization
    "is_valid_float",
    "sanitize_float",
    # Numerical Safeguards: Epsilon comparisons
    "is_close",
    # Numerical Safeguards: Utilities
    "clamp",
    # Numerical Safeguards: Validation
    "validate_in_range",
    "validate_non_negative",
    "validate_positive",
    # Invariant: Types
    "ConsolidatedTickState",
    "InvariantRegime",
    "EMPTY_TICKS",
    # Invariant: Functions
    "compute_invariant",
    "effective_boundary_radius",
    "orthogonal_magnitude",
    "projection",
    "spot_price",
    "torus_center",
    "torus_gradient",
    "torus_value",
    # Swap Solver
    "RESERVE_FLOOR",
    "SolverConfig",
    "SwapSolution",
    "apply_swap_to_sums",
    "solve_swap",
]
