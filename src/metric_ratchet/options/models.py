"""Run options and the config-file model they are built from."""

from __future__ import annotations

import enum
import operator
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OptionsValidationError(ValueError):
    """Raised when merged configuration cannot describe a run."""


class ComparisonType(enum.Enum):
    """Relation the current metric must hold against the base metric."""

    NONE = "none"
    LT = "lt"
    LE = "le"
    EQ = "eq"
    GE = "ge"
    GT = "gt"

    @property
    def relation(self) -> str:
        return _RELATIONS[self][0]

    @property
    def label(self) -> str:
        return _RELATIONS[self][1]

    def holds(self, current: float, base: float) -> bool:
        if self is ComparisonType.NONE:
            raise ValueError("no comparison requested")
        return _RELATIONS[self][2](current, base)


_RELATIONS: dict[ComparisonType, tuple[str, str, Callable[[float, float], bool]]] = {
    ComparisonType.NONE: ("", "unknown", lambda current, base: True),
    ComparisonType.LT: ("less than", "less-than", operator.lt),
    ComparisonType.LE: ("less than or equal to", "less-equal", operator.le),
    ComparisonType.EQ: ("equal to", "equal-to", operator.eq),
    ComparisonType.GE: ("greater than or equal to", "greater-equal", operator.ge),
    ComparisonType.GT: ("greater than", "greater-than", operator.gt),
}

# Precedence when more than one operator survives a merge.
OPERATOR_FIELDS = ("lt", "le", "eq", "ge", "gt")


@dataclass(frozen=True, slots=True)
class Options:
    """Immutable, validated description of one ratchet run."""

    metric: str
    comparison: ComparisonType = ComparisonType.NONE
    base_ref: str = ""
    pre: str = ""
    post: str = ""
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.metric.strip():
            raise OptionsValidationError("a metric command is required")
        if self.comparison is not ComparisonType.NONE and not self.base_ref:
            raise OptionsValidationError(
                f"a base ref is required for a {self.comparison.label} comparison"
            )

    @property
    def compares(self) -> bool:
        return self.comparison is not ComparisonType.NONE


class RatchetConfig(BaseModel):
    """Contents of a ``.ratchet`` YAML or JSON config file."""

    model_config = ConfigDict(extra="ignore")

    metric: str = Field(default="", description="Command that prints the metric value.")
    pre: str = Field(default="", description="Command run before the metric command.")
    post: str = Field(default="", description="Command run after the metric command.")
    lt: str = Field(default="", description="Base ref for a less-than comparison.")
    le: str = Field(default="", description="Base ref for a less-or-equal comparison.")
    eq: str = Field(default="", description="Base ref for an equality comparison.")
    ge: str = Field(default="", description="Base ref for a greater-or-equal comparison.")
    gt: str = Field(default="", description="Base ref for a greater-than comparison.")
    verbose: bool = Field(default=False, description="Show progress and comparison details.")

    @field_validator("metric", "pre", "post", "lt", "le", "eq", "ge", "gt", mode="before")
    @classmethod
    def _coerce_scalar(cls, value: Any):  # type: ignore[override]
        if value is None:
            return ""
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("verbose", mode="before")
    @classmethod
    def _null_verbose(cls, value: Any):  # type: ignore[override]
        return False if value is None else value

    def validate_for_run(self) -> None:
        if not self.metric:
            raise OptionsValidationError("a metric command is required")
        if sum(1 for name in OPERATOR_FIELDS if getattr(self, name)) > 1:
            raise OptionsValidationError("only one comparison operator can be specified")

    def merge_with_flags(
        self,
        *,
        metric: str | None = None,
        pre: str | None = None,
        post: str | None = None,
        lt: str | None = None,
        le: str | None = None,
        eq: str | None = None,
        ge: str | None = None,
        gt: str | None = None,
        verbose: bool = False,
    ) -> "RatchetConfig":
        """Return a copy with command-line values taking precedence.

        A comparison operator given on the command line replaces whichever
        operator the config file set, even a different one.
        """

        update: dict[str, Any] = {}
        for name, value in (("metric", metric), ("pre", pre), ("post", post)):
            if value:
                update[name] = value

        flag_operators = {"lt": lt, "le": le, "eq": eq, "ge": ge, "gt": gt}
        if any(flag_operators.values()):
            for name, value in flag_operators.items():
                update[name] = value or ""

        if verbose:
            update["verbose"] = True
        return self.model_copy(update=update)

    def comparison_info(self) -> tuple[ComparisonType, str]:
        for name in OPERATOR_FIELDS:
            value = getattr(self, name)
            if value:
                return ComparisonType(name), value
        return ComparisonType.NONE, ""

    def to_options(self) -> Options:
        self.validate_for_run()
        comparison, base_ref = self.comparison_info()
        return Options(
            metric=self.metric,
            comparison=comparison,
            base_ref=base_ref,
            pre=self.pre,
            post=self.post,
            verbose=self.verbose,
        )


__all__ = [
    "ComparisonType",
    "OPERATOR_FIELDS",
    "Options",
    "OptionsValidationError",
    "RatchetConfig",
]
