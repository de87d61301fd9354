"""
Numerical Safeguards — Safe Math Primitives для Orbital invariant

Все суммы, резервы, радиусы и значения инварианта — IEEE-754 float.
Модуль обеспечивает численную устойчивость математики пула:
- Безопасное деление с защитой от деления на ноль (k_norm, boundaryConstant, доли LP)
- NaN/Inf санитизация: невалидные значения никогда не попадают в резервы
- Безопасный sqrt для орто-компоненты и эффективного радиуса границы
- Epsilon-сравнения float для пост-условий инварианта

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Деление на ноль никогда не происходит (возвращается fallback)
2. NaN/Inf никогда не пропагируют (заменяются на fallback)
3. sqrt от отрицательного аргумента (ошибка округления) даёт 0.0, а не NaN
4. Все операции детерминированы и воспроизводимы
"""

import math
from typing import Final

# =============================================================================
# EPSILON-ПАРАМЕТРЫ
# =============================================================================

# Epsilon для цен (репорты оракула, spot price)
EPS_PRICE: Final[float] = 1e-8

# Epsilon для общих вычислений
EPS_CALC: Final[float] = 1e-12

# Относительная толерантность is_close
EPS_FLOAT_COMPARE_REL: Final[float] = 1e-9

# Абсолютная толерантность is_close
EPS_FLOAT_COMPARE_ABS: Final[float] = 1e-12


# =============================================================================
# БЕЗОПАСНОЕ ДЕЛЕНИЕ
# =============================================================================


def denom_safe_signed(value: float, eps: float = EPS_CALC) -> float:
    """
    Знаковый делитель с epsilon-защитой: sign(x) * max(abs(x), eps).

    Examples:
        >>> denom_safe_signed(10.0, 1e-6)
        10.0
        >>> denom_safe_signed(-1e-9, 1e-6)
        -1e-06
    """
    if eps <= 0:
        raise ValueError(f"eps must be positive, got {eps}")

    if abs(value) >= eps:
        return value
    return -eps if value < 0 else eps


def safe_divide(
    numerator: float,
    denominator: float,
    eps: float = EPS_CALC,
    fallback: float = 0.0,
) -> float:
    """
    Безопасное деление с защитой от деления на ноль и NaN/Inf.

    Точный ноль в знаменателе возвращает fallback; малые ненулевые
    знаменатели поднимаются до eps с сохранением знака.

    Args:
        numerator: Числитель
        denominator: Знаменатель
        eps: Минимальный абсолютный порог для знаменателя
        fallback: Значение при делении на ноль (default: 0.0)

    Returns:
        Результат деления или fallback

    Examples:
        >>> safe_divide(10.0, 2.0)
        5.0
        >>> safe_divide(10.0, 0.0)
        0.0
    """
    num_clean = sanitize_float(numerator, fallback=0.0)
    denom_raw = sanitize_float(denominator, fallback=0.0)

    if denom_raw == 0.0:
        return fallback

    try:
        result = num_clean / denom_safe_signed(denom_raw, eps)
    except (ZeroDivisionError, FloatingPointError):
        return fallback

    return sanitize_float(result, fallback=fallback)


def safe_sqrt(value: float) -> float:
    """
    Квадратный корень с отсечением отрицательного аргумента.

    Σx² − (Σx)²/n и r_b² − (c − r_b/n)² могут уйти в −ε из-за округления;
    такие значения трактуются как 0.0.

    Examples:
        >>> safe_sqrt(4.0)
        2.0
        >>> safe_sqrt(-1e-18)
        0.0
    """
    clean = sanitize_float(value, fallback=0.0)
    if clean <= 0.0:
        return 0.0
    return math.sqrt(clean)


# =============================================================================
# NaN/Inf САНИТИЗАЦИЯ
# =============================================================================


def is_valid_float(value: float) -> bool:
    """True если значение конечно (не NaN, не Inf)."""
    return math.isfinite(value)


def sanitize_float(value: float, fallback: float = 0.0) -> float:
    """
    Замена NaN/Inf на fallback.

    Examples:
        >>> sanitize_float(10.0)
        10.0
        >>> sanitize_float(float('nan'))
        0.0
        >>> sanitize_float(float('-inf'), fallback=-1.0)
        -1.0
    """
    if is_valid_float(value):
        return value
    return fallback


# =============================================================================
# EPSILON-СРАВНЕНИЯ FLOAT
# =============================================================================


def is_close(
    a: float,
    b: float,
    rel_tol: float = EPS_FLOAT_COMPARE_REL,
    abs_tol: float = EPS_FLOAT_COMPARE_ABS,
) -> bool:
    """
    Сравнение float с учётом машинной точности.

    abs(a - b) <= max(rel_tol * max(abs(a), abs(b)), abs_tol)

    Examples:
        >>> is_close(1.0, 1.0 + 1e-10)
        True
        >>> is_close(1e8, 1e8 + 1e-3)
        True
    """
    return math.isclose(a, b, rel_tol=rel_tol, abs_tol=abs_tol)


def clamp(
    value: float,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    """
    Ограничение значения в диапазоне [min_value, max_value].

    Examples:
        >>> clamp(-1.0, 0.0, 10.0)
        0.0
        >>> clamp(15.0, 0.0, 10.0)
        10.0
    """
    result = value

    if min_value is not None:
        result = max(result, min_value)

    if max_value is not None:
        result = min(result, max_value)

    return result


# =============================================================================
# ВАЛИДАЦИЯ
# =============================================================================


def validate_positive(value: float, name: str, eps: float = 0.0) -> None:
    """
    Валидация, что значение конечно и строго больше eps.

    Raises:
        ValueError: Если value <= eps или NaN/Inf
    """
    if not is_valid_float(value):
        raise ValueError(f"{name} must be a valid float (not NaN/Inf), got {value}")

    if value <= eps:
        raise ValueError(f"{name} must be positive (> {eps}), got {value}")


def validate_non_negative(value: float, name: str) -> None:
    """
    Валидация, что значение конечно и неотрицательно.

    Raises:
        ValueError: Если value < 0 или NaN/Inf
    """
    if not is_valid_float(value):
        raise ValueError(f"{name} must be a valid float (not NaN/Inf), got {value}")

    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def validate_in_range(
    value: float,
    name: str,
    min_value: float | None = None,
    max_value: float | None = None,
) -> None:
    """
    Валидация, что значение конечно и лежит в [min_value, max_value].

    Raises:
        ValueError: Если value вне диапазона или NaN/Inf
    """
    if not is_valid_float(value):
        raise ValueError(f"{name} must be a valid float (not NaN/Inf), got {value}")

    if min_value is not None and value < min_value:
        raise ValueError(f"{name} must be >= {min_value}, got {value}")

    if max_value is not None and value > max_value:
        raise ValueError(f"{name} must be <= {max_value}, got {value}")
