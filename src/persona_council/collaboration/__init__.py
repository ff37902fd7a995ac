"""
Collaboration -- persona selection, strategies, cross-validation, sessions.

The orchestrator lives in collaboration.orchestrator and is imported from
there (it depends on the providers package, which depends on these models).
"""

from .classifier import ArchetypeClassifier, QueryAnalyzer, SentimentScorer
from .cross_validation import CrossValidator
from .models import (
    ActionPlan,
    ActionStep,
    CollaborationConfig,
    CollaborationMode,
    CollaborationResult,
    CollaborationSession,
    CrossValidationResult,
    PersonaAnalysis,
    SessionInfo,
    SessionStatus,
    SynthesisResult,
)
from .selector import PersonaSelector, SelectionResult
