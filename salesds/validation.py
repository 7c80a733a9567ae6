"""
Record validation: per-field rules followed by per-store business rules.

Field checks run in a fixed order (required, type, length, range, pattern,
enum) and stop at the first failure for that field; every field is checked.
Business rules then see the fully assembled record.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from .exceptions import StoreNotFoundError
from .logger import get_logger
from .registry import StoreRegistry
from .schema import FieldRule, FieldType

# A business rule returns an error message, or None when the record passes
BusinessRule = Callable[[Mapping[str, Any]], Optional[str]]


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_bound(value: float) -> str:
    return f"{value:g}" if isinstance(value, float) else str(value)


def growth_rate(current: float, previous: float) -> float:
    """Fractional change from previous to current; 0 when there is no baseline."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous


def achievement_rate(actual: float, target: float) -> float:
    """Actual as a percentage of target; 0 when the target is 0."""
    if target == 0:
        return 0.0
    return actual / target * 100


def check_field(name: str, rule: FieldRule, value: Any) -> Optional[str]:
    """Return the first rule violation for a single field, if any."""
    if value is None or value == "":
        return f"{name} is required" if rule.required else None

    if rule.type is FieldType.STRING:
        if not isinstance(value, str):
            return f"{name} must be a string"
    elif rule.type is FieldType.NUMBER:
        if not is_number(value):
            return f"{name} must be a number"
    elif rule.type is FieldType.DATE:
        if not isinstance(value, datetime):
            return f"{name} must be a date"
    else:
        raise ValueError(f"Unhandled field type: {rule.type}")

    if rule.type is FieldType.STRING:
        if rule.min_length is not None and len(value) < rule.min_length:
            return f"{name} must be at least {rule.min_length} characters"
        if rule.max_length is not None and len(value) > rule.max_length:
            return f"{name} must be at most {rule.max_length} characters"

    if rule.type is FieldType.NUMBER:
        if rule.min is not None and value < rule.min:
            return f"{name} must be at least {_format_bound(rule.min)}"
        if rule.max is not None and value > rule.max:
            return f"{name} must be at most {_format_bound(rule.max)}"

    if rule.pattern is not None and not rule.pattern.search(str(value)):
        return f"{name} format is invalid"

    if rule.enum is not None and value not in rule.enum:
        choices = rule.enum_order or tuple(sorted(rule.enum))
        return f"{name} must be one of: {', '.join(choices)}"

    return None


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------

def monthly_target_covers_mtd(record: Mapping[str, Any]) -> Optional[str]:
    monthly, mtd = record.get("monthlyTarget"), record.get("mtdTarget")
    if is_number(monthly) and is_number(mtd) and monthly < mtd:
        return "Monthly target must be greater than or equal to MTD target"
    return None


def mtd_actual_within_target(record: Mapping[str, Any]) -> Optional[str]:
    actual, monthly = record.get("mtdActual"), record.get("monthlyTarget")
    if is_number(actual) and is_number(monthly) and actual > monthly:
        return "MTD actual cannot exceed monthly target"
    return None


def growth_ceiling_rule(ceiling: float) -> BusinessRule:
    """Month-over-month growth must not exceed ceiling (0.5 == 50%)."""
    def rule(record: Mapping[str, Any]) -> Optional[str]:
        current, previous = record.get("thisMonthActual"), record.get("lastMonthActual")
        if not (is_number(current) and is_number(previous)):
            return None
        if growth_rate(current, previous) > ceiling:
            return f"Growth rate cannot exceed {ceiling * 100:g}%"
        return None
    return rule


class Validator:
    """Validates records against their store's field rules and business rules."""

    def __init__(self, registry: StoreRegistry, growth_ceiling: float = 0.5, config=None):
        self.registry = registry
        self.growth_ceiling = config.validation.growth_ceiling if config is not None else growth_ceiling
        self.business_rules: Dict[str, List[BusinessRule]] = {}
        self.logger = get_logger("Validator")

        self.add_rule("sales", monthly_target_covers_mtd)
        self.add_rule("sales", mtd_actual_within_target)
        self.add_rule("dsr", growth_ceiling_rule(self.growth_ceiling))

    def add_rule(self, store_name: str, rule: BusinessRule):
        self.business_rules.setdefault(store_name, []).append(rule)

    def validate(self, store_name: str, record: Mapping[str, Any]) -> ValidationResult:
        try:
            store = self.registry.get(store_name)
        except StoreNotFoundError as e:
            return ValidationResult(False, [str(e)])

        errors = []
        for name, rule in store.schema.items():
            error = check_field(name, rule, record.get(name))
            if error:
                errors.append(error)

        for rule in self.business_rules.get(store_name, []):
            message = rule(record)
            if message:
                errors.append(message)

        if errors:
            self.logger.debug(f"{store_name} record rejected: {errors}")
        return ValidationResult(not errors, errors)
