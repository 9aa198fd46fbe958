"""
Clinical state schemas shared by the engine, the repositories and the API.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TriageColor(str, Enum):
    GREEN = 'GREEN'
    YELLOW = 'YELLOW'
    RED = 'RED'


class RiskLevel(str, Enum):
    LOW = 'LOW'
    HIGH = 'HIGH'
    CRITICAL = 'CRITICAL'


class Consciousness(str, Enum):
    ALERT = 'ALERT'
    VOICE = 'VOICE'
    PAIN = 'PAIN'
    UNRESPONSIVE = 'UNRESPONSIVE'


class VitalsSnapshot(BaseModel):
    """Partially-filled vitals form. ``None`` means not yet entered."""
    systolic_bp: Optional[float] = None
    diastolic_bp: Optional[float] = None
    heart_rate: Optional[float] = None
    respiratory_rate: Optional[float] = None
    temperature: Optional[float] = None
    consciousness: Consciousness = Consciousness.ALERT

    model_config = ConfigDict(frozen=True, json_schema_extra={"example": {
        "systolic_bp": 145, "diastolic_bp": 92, "heart_rate": 104,
        "respiratory_rate": 18, "temperature": 36.8, "consciousness": "ALERT"
    }})

    def is_empty(self) -> bool:
        numeric = (self.systolic_bp, self.diastolic_bp, self.heart_rate,
                   self.respiratory_rate, self.temperature)
        return all(v is None for v in numeric) and self.consciousness == Consciousness.ALERT


class PatientRecord(BaseModel):
    id: str
    timestamp: datetime
    vitals: VitalsSnapshot
    triage_result: TriageColor
    notes: str = ''
    synced: bool = False
    gestational_age_weeks: Optional[float] = None

    model_config = ConfigDict(frozen=True)


class LaborDataPoint(BaseModel):
    dilation_cm: float = Field(..., ge=0, le=10)
    observed_at: datetime
    hours_from_start: float


class PartogramState(BaseModel):
    active_phase_start: Optional[datetime] = None
    points: List[LaborDataPoint] = Field(default_factory=list)


class PPHSession(BaseModel):
    is_active: bool = False
    start_time: Optional[datetime] = None
    actions_taken: Set[str] = Field(default_factory=set)
    is_refractory: bool = False

    @model_validator(mode='after')
    def _active_requires_start(self):
        if self.is_active and self.start_time is None:
            raise ValueError("active PPH session must carry a start_time")
        return self

    def is_cleared(self) -> bool:
        return not self.is_active and self.start_time is None


class GuidelineChunk(BaseModel):
    id: str
    title: str
    content: str
    page: int
    tags: List[str] = Field(default_factory=list)


class ProtocolItem(BaseModel):
    id: str
    category: str
    title: str
    dosage_iv: Optional[str] = None
    rate: Optional[str] = None
    indications: List[str] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list)
    pdf_ref: str
    warning: Optional[str] = None
