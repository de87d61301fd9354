"""
JSON Schema Contract Validators

Валидация persisted-записей движка согласно JSON Schema контрактам
(Draft 2020-12) на границе с persistence-слоем хоста.

Схемы:
- pool_record.json — один Pool record (активы, резервы, суммы, параметры, флаги)
- position_record.json — один Position record на (pool, provider)
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterator

import jsonschema
from jsonschema import Draft202012Validator, ValidationError


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Находит схемы в contracts/schema/ относительно корня проекта.
    """

    def __init__(self):
        # Корень проекта на 4 уровня вверх от этого файла
        self._schema_dir = Path(__file__).parent.parent.parent.parent / "contracts" / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка и meta-валидация JSON Schema файла (с кэшем).

        Args:
            schema_name: Имя схемы без расширения (например, 'pool_record')

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если схема не проходит meta-валидацию
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}")

        self._schemas[schema_name] = schema
        return schema


_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """Валидатор данных против одной JSON Schema."""

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Raises:
            ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]) -> Iterator[ValidationError]:
        return self.validator.iter_errors(data)


class PoolRecordValidator(ContractValidator):
    """Валидатор pool_record контракта."""

    def __init__(self):
        super().__init__("pool_record")


class PositionRecordValidator(ContractValidator):
    """Валидатор position_record контракта."""

    def __init__(self):
        super().__init__("position_record")


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validate_pool_record(data: Dict[str, Any]) -> None:
    """
    Raises:
        ValidationError: Если данные не соответствуют pool_record.json
    """
    PoolRecordValidator().validate(data)


def validate_position_record(data: Dict[str, Any]) -> None:
    """
    Raises:
        ValidationError: Если данные не соответствуют position_record.json
    """
    PositionRecordValidator().validate(data)
