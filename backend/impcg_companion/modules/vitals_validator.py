from dataclasses import dataclass
from typing import Optional

from .schemas import VitalsSnapshot


BP_INVERTED_MESSAGE = "Systolic BP cannot be lower than Diastolic"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    message: Optional[str] = None


VALID = ValidationResult(valid=True)


def validate_vitals(snapshot: VitalsSnapshot) -> ValidationResult:
    # Impossible values block classification; they never default to a color
    systolic = snapshot.systolic_bp
    diastolic = snapshot.diastolic_bp

    if systolic is not None and diastolic is not None and systolic < diastolic:
        return ValidationResult(valid=False, message=BP_INVERTED_MESSAGE)

    return VALID
