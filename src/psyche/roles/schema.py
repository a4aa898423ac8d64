"""Typed payloads exchanged with, and produced by, the role policies."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..agents.types import AgentRole
from .finding_tracker import Finding


class ReplyModel(BaseModel):
    """Base model for parsed model replies.

    Replies use camelCase keys; unknown keys are ignored because model output
    routinely carries commentary fields.
    """

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class EgoDecision(ReplyModel):
    action: Literal["dispatch", "update_plan", "converse", "idle"]
    reason: str = ""
    task_id: Optional[str] = None
    plan: Optional[str] = None
    entry: Optional[str] = None


class DispatchResult(ReplyModel):
    target_role: AgentRole
    task_id: str
    description: str


class TaskAssignment(ReplyModel):
    task_id: str
    description: str


class Proposal(ReplyModel):
    target: str
    content: str


class TaskResult(ReplyModel):
    result: Literal["success", "failure", "partial"] = "failure"
    summary: str = ""
    progress_entry: str = ""
    skill_updates: Optional[str] = None
    memory_updates: Optional[str] = None
    proposals: List[Proposal] = Field(default_factory=list)


class OutcomeEvaluation(ReplyModel):
    outcome_matches_intent: bool = False
    quality_score: float = Field(default=0, ge=0, le=100)
    issues_found: List[str] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)
    needs_reassessment: bool = False


class ProposalEvaluation(ReplyModel):
    approved: bool = False
    reason: str = ""


class GovernanceReport(ReplyModel):
    findings: List[Finding] = Field(default_factory=list)
    proposal_evaluations: List[ProposalEvaluation] = Field(default_factory=list)
    summary: str = ""


class GoalCandidate(ReplyModel):
    title: str
    description: str = ""
    priority: Literal["high", "medium", "low"] = "medium"
    confidence: float = Field(default=50, ge=0, le=100)


class IdleDetectionResult(ReplyModel):
    idle: bool
    reason: str
