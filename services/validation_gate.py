"""
Per-step required-field checks for the product wizard.

The gate only ever looks at the fields the requested step declares, so a
vendor can move back past invalid data on later steps.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence
import structlog

from exceptions import ValidationError
from models.product import ProductFormState
from models.wizard import PRODUCT_STEPS, StepDefinition

logger = structlog.get_logger(__name__)

# A rule returns None when the value is acceptable, else the reason.
FieldRule = Callable[[Any], Optional[str]]


def required_text(message: str) -> FieldRule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str) or not value.strip():
            return message
        return None
    return rule


def required_selection(message: str) -> FieldRule:
    def rule(value: Any) -> Optional[str]:
        return message if value is None else None
    return rule


def required_number(message: str, minimum: Decimal, below_minimum: str) -> FieldRule:
    def rule(value: Any) -> Optional[str]:
        if value is None:
            return message
        if value < minimum:
            return below_minimum
        return None
    return rule


FIELD_RULES: dict[str, FieldRule] = {
    "name": required_text("Product name is required"),
    "category": required_selection("Category is required"),
    "unit": required_selection("Unit is required"),
    "description": required_text("Description is required"),
    "selling_price": required_number(
        "Selling price is required", Decimal(1), "Selling price must be at least 1"
    ),
    "price": required_number(
        "Price is required", Decimal(1), "Price must be at least 1"
    ),
    "stock": required_number(
        "Stock is required", Decimal(0), "Stock must be 0 or more"
    ),
}


@dataclass
class GateResult:
    """Outcome of checking one step."""

    step_id: int
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def summary(self) -> Optional[str]:
        """Aggregate message for the vendor, None when the step passed."""
        if self.passed:
            return None
        if len(self.errors) == 1:
            return next(iter(self.errors.values()))
        return f"Please fix {len(self.errors)} fields before continuing"


class ValidationGate:
    """
    Checks the required fields of one wizard step.

    Usage:
        gate = ValidationGate()
        result = gate.check(1, form)
        if not result.passed:
            show(result.errors)
    """

    def __init__(
        self,
        steps: Sequence[StepDefinition] = PRODUCT_STEPS,
        rules: Optional[dict[str, FieldRule]] = None
    ):
        self.steps = {step.id: step for step in steps}
        self.rules = rules or FIELD_RULES

        missing = {f for s in steps for f in s.required_fields} - set(self.rules)
        if missing:
            raise ValueError(f"No validation rule for required fields: {sorted(missing)}")

    def check(self, step_id: int, form: ProductFormState) -> GateResult:
        """
        Validate the required fields declared by step_id.

        Raises:
            ValidationError: If the step id is not part of the wizard
        """
        step = self.steps.get(step_id)
        if step is None:
            raise ValidationError(
                message=f"Unknown wizard step: {step_id}",
                code="WIZARD_UNKNOWN_STEP",
                details={"step": step_id, "valid": sorted(self.steps)}
            )

        result = GateResult(step_id=step_id)
        for name in sorted(step.required_fields):
            reason = self.rules[name](getattr(form, name))
            if reason:
                result.errors[name] = reason

        if not result.passed:
            logger.info(
                "step_validation_failed",
                step=step_id,
                fields=list(result.errors)
            )
        return result

    def check_all(self, form: ProductFormState) -> GateResult:
        """Validate every step; used before submit."""
        combined = GateResult(step_id=max(self.steps))
        for step_id in sorted(self.steps):
            combined.errors.update(self.check(step_id, form).errors)
        return combined
