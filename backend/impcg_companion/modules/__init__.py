"""
IMPCG Companion Modules Package
Clinical state engine for point-of-care maternal decision support
"""

from .schemas import (
    TriageColor,
    RiskLevel,
    Consciousness,
    VitalsSnapshot,
    PatientRecord,
    LaborDataPoint,
    PartogramState,
    PPHSession,
    GuidelineChunk,
    ProtocolItem,
)
from .storage import JsonFileStore, MemoryStore, PATIENTS_KEY, PPH_KEY, PARTOGRAM_KEY
from .audit_trail import AuditAction, AuditTrail, NullAuditTrail
from .vitals_validator import validate_vitals, ValidationResult
from .triage_classifier import classify, assess_triage, TriageAssessment
from .banc_risk import classify_risk, assess_banc, BancAssessment, RISK_GUIDANCE
from .partogram_tracker import PartogramTracker, detect_breach
from .pph_session import (
    EmergencySessionEngine,
    AsyncioTickScheduler,
    ResumeState,
    SessionStateError,
    ResumeDecisionPending,
    PPH_PROTOCOL,
    format_elapsed,
)
from .patient_repository import PatientRepository, PatientStats
from .referral_composer import compose_referral, generate_referral
from .guideline_search import GuidelineSearchIndex
from .reference_library import ReferenceLibrary


__all__ = [
    'TriageColor',
    'RiskLevel',
    'Consciousness',
    'VitalsSnapshot',
    'PatientRecord',
    'LaborDataPoint',
    'PartogramState',
    'PPHSession',
    'GuidelineChunk',
    'ProtocolItem',
    'JsonFileStore',
    'MemoryStore',
    'PATIENTS_KEY',
    'PPH_KEY',
    'PARTOGRAM_KEY',
    'AuditAction',
    'AuditTrail',
    'NullAuditTrail',
    'validate_vitals',
    'ValidationResult',
    'classify',
    'assess_triage',
    'TriageAssessment',
    'classify_risk',
    'assess_banc',
    'BancAssessment',
    'RISK_GUIDANCE',
    'PartogramTracker',
    'detect_breach',
    'EmergencySessionEngine',
    'AsyncioTickScheduler',
    'ResumeState',
    'SessionStateError',
    'ResumeDecisionPending',
    'PPH_PROTOCOL',
    'format_elapsed',
    'PatientRepository',
    'PatientStats',
    'compose_referral',
    'generate_referral',
    'GuidelineSearchIndex',
    'ReferenceLibrary',
]
