"""Role policies, prompt assembly and audit-finding escalation."""

from .base import RoleRuntime
from .ego import Ego
from .finding_tracker import EscalationInfo, Finding, FindingTracker, generate_signature
from .id import Id
from .prompts import ROLE_PROMPTS, FileContext, PromptBuilder
from .schema import (
    DispatchResult,
    EgoDecision,
    GoalCandidate,
    GovernanceReport,
    IdleDetectionResult,
    OutcomeEvaluation,
    Proposal,
    ProposalEvaluation,
    TaskAssignment,
    TaskResult,
)
from .subconscious import Subconscious, compute_drive_rating
from .superego import Superego

__all__ = [
    "DispatchResult",
    "Ego",
    "EgoDecision",
    "EscalationInfo",
    "FileContext",
    "Finding",
    "FindingTracker",
    "GoalCandidate",
    "GovernanceReport",
    "Id",
    "IdleDetectionResult",
    "OutcomeEvaluation",
    "PromptBuilder",
    "Proposal",
    "ProposalEvaluation",
    "ROLE_PROMPTS",
    "RoleRuntime",
    "Subconscious",
    "Superego",
    "TaskAssignment",
    "TaskResult",
    "compute_drive_rating",
    "generate_signature",
]
