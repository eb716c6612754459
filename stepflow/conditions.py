"""Branch condition evaluation.

The engine only depends on :class:`ConditionEvaluator`. Implementations must
be pure and deterministic: the same expression and snapshot always give the
same answer and evaluation never changes state.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

import yaml

_MISSING = object()


class ConditionEvaluator(Protocol):
    def evaluate(self, expression: str, snapshot: Mapping[str, Any]) -> bool:
        """Return whether ``expression`` holds for the execution ``snapshot``."""


class DataFieldEvaluator(ConditionEvaluator):
    """Checks one ``execution_data`` field.

    Supported forms: ``field``, ``not field``, ``field == literal`` and
    ``field != literal``. ``field`` may be a dotted path; literals are parsed
    as YAML scalars (``true``, ``42``, ``'approved'``).
    """

    def evaluate(self, expression: str, snapshot: Mapping[str, Any]) -> bool:
        expression = expression.strip()
        data = snapshot.get("execution_data") or {}

        # The first operator splits field from literal; the literal may contain either.
        found = [(expression.find(op), op) for op in ("==", "!=") if op in expression]
        if found:
            index, operator = min(found)
            field, raw = expression[:index], expression[index + len(operator):]
            value = self._lookup(data, field.strip())
            expected = yaml.safe_load(raw.strip()) if raw.strip() else None
            matched = value is not _MISSING and value == expected
            return matched if operator == "==" else not matched

        if expression.startswith("not "):
            value = self._lookup(data, expression[4:].strip())
            return value is _MISSING or not value

        value = self._lookup(data, expression)
        return value is not _MISSING and bool(value)

    @staticmethod
    def _lookup(data: Mapping[str, Any], path: str) -> Any:
        if not path:
            raise ValueError("Condition is missing a field name")
        current: Any = data
        for part in path.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return _MISSING
            current = current[part]
        return current
