"""
Contract Validation Module

Валидация persisted-записей Orbital engine (pool / position records).
"""

from .validators import (
    ContractValidator,
    PoolRecordValidator,
    PositionRecordValidator,
    SchemaLoader,
    validate_pool_record,
    validate_position_record,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "PoolRecordValidator",
    "PositionRecordValidator",
    # Functions
    "validate_pool_record",
    "validate_position_record",
]
