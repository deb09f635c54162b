"""Per-model printing limits."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class ModelLimits:
    """
    Attributes:
        max_width: Widest bitmap the print head accepts, in pixels
        max_density: Highest accepted SET_LABEL_DENSITY value
        margins: Whether row headers carry computed margins (zeros otherwise)
    """
    max_width: int
    max_density: int
    margins: bool = True


class PrinterModel(Enum):
    """Supported NIIMBOT models."""
    B1 = ModelLimits(max_width=384, max_density=5)
    B18 = ModelLimits(max_width=384, max_density=3)
    B21 = ModelLimits(max_width=384, max_density=5)
    D11 = ModelLimits(max_width=96, max_density=3)
    D110 = ModelLimits(max_width=96, max_density=3)

    @property
    def limits(self) -> ModelLimits:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> "PrinterModel":
        """Look up a model by case-insensitive name (e.g. "b21")."""
        try:
            return cls[name.upper()]
        except KeyError:
            choices = ", ".join(m.name.lower() for m in cls)
            raise ValueError(f"Unknown printer model {name!r}; expected one of {choices}") from None
