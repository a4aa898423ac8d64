"""Auditor role: governance reports, proposal review and finding escalation."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ..agents.types import AgentRole
from ..models.json_extract import JsonExtractionError, extract_json
from ..models.stream_json import LogEntryCallback
from ..substrate.store import SubstrateError, utc_now
from ..substrate.types import SubstrateFileType
from .base import RoleRuntime
from .finding_tracker import EscalationInfo, Finding, FindingTracker, generate_signature
from .schema import GovernanceReport, Proposal, ProposalEvaluation

__all__ = ["Superego"]

LOGGER = logging.getLogger(__name__)

_ROLE = AgentRole.SUPEREGO

_AUDIT_INSTRUCTION = (
    "Audit all substrate files for consistency, alignment with values and security concerns. "
    "Report findings with severity info, warning or critical."
)


def _failed_report(summary: str) -> GovernanceReport:
    return GovernanceReport(
        findings=[Finding(severity="critical", message=summary)],
        summary=summary,
    )


def _escalation_notice(info: EscalationInfo) -> str:
    cycles = ", ".join(str(cycle) for cycle in info.cycles)
    return (
        f"## Escalated finding {info.finding_id}\n"
        f"Severity: {info.severity}\n"
        f"Message: {info.message}\n"
        f"Occurrences: {len(info.cycles)} (cycles {cycles})\n"
        f"First detected: cycle {info.first_detected_cycle}\n"
        f"Last seen: cycle {info.last_occurrence_cycle}\n"
        "Action: recurring critical finding requires human review."
    )


class Superego:
    def __init__(self, runtime: RoleRuntime) -> None:
        self._rt = runtime

    def audit(
        self,
        on_log_entry: Optional[LogEntryCallback] = None,
        cycle_number: Optional[int] = None,
        tracker: Optional[FindingTracker] = None,
    ) -> GovernanceReport:
        """Run a governance audit.

        With both ``cycle_number`` and ``tracker`` the critical findings are
        tracked; any that escalate are written to the escalation log and left
        out of the returned report.
        """
        try:
            message = self._rt.prompts.build_message(_ROLE, _AUDIT_INSTRUCTION)
            result = self._rt.launch(_ROLE, message, on_log_entry)
        except SubstrateError as error:
            LOGGER.warning("Audit could not assemble its context: %s", error)
            return _failed_report(f"Audit failed: {error}")

        if not result.success:
            return _failed_report("Audit failed: session error")

        try:
            report = GovernanceReport.model_validate(extract_json(result.raw_output))
        except (JsonExtractionError, ValidationError) as error:
            LOGGER.warning("Audit reply could not be parsed: %s", error)
            return _failed_report(f"Audit failed: {error}")

        if tracker is None or cycle_number is None:
            return report
        return self._escalate(report, cycle_number, tracker)

    def _escalate(self, report: GovernanceReport, cycle_number: int, tracker: FindingTracker) -> GovernanceReport:
        kept: List[Finding] = []
        for finding in report.findings:
            if finding.severity != "critical" or not tracker.track(finding, cycle_number):
                kept.append(finding)
                continue
            info = tracker.get_escalation_info(finding)
            if info is None:
                kept.append(finding)
                continue
            self._rt.checker.assert_can_append(_ROLE, SubstrateFileType.ESCALATE)
            self._rt.store.append(SubstrateFileType.ESCALATE, _escalation_notice(info))
            self.log_audit(
                f"Escalated recurring finding {info.finding_id} after {len(info.cycles)} occurrences: {info.message}"
            )
            tracker.clear_finding(generate_signature(finding))
            LOGGER.warning("Escalated finding %s: %s", info.finding_id, info.message)
        return report.model_copy(update={"findings": kept})

    def evaluate_proposals(
        self,
        proposals: Sequence[Proposal],
        on_log_entry: Optional[LogEntryCallback] = None,
    ) -> List[ProposalEvaluation]:
        """Return one evaluation per proposal, in order. Anything missing is a rejection."""
        if not proposals:
            return []
        listing = "\n".join(
            f"{index}. [{proposal.target}] {proposal.content}" for index, proposal in enumerate(proposals, start=1)
        )
        instruction = (
            "Evaluate these proposals against the agent's values and security policy:\n"
            f"{listing}\n\n"
            "Return one proposalEvaluations entry per proposal, in the same order."
        )

        try:
            message = self._rt.prompts.build_message(_ROLE, instruction)
            result = self._rt.launch(_ROLE, message, on_log_entry)
        except SubstrateError as error:
            return self._reject_all(proposals, f"Evaluation failed: {error}")

        if not result.success:
            return self._reject_all(proposals, f"Evaluation failed: {result.error or 'session error'}")

        try:
            report = GovernanceReport.model_validate(extract_json(result.raw_output))
        except (JsonExtractionError, ValidationError) as error:
            return self._reject_all(proposals, f"Evaluation failed: {error}")

        evaluations = list(report.proposal_evaluations[: len(proposals)])
        while len(evaluations) < len(proposals):
            evaluations.append(ProposalEvaluation(approved=False, reason="No evaluation returned"))
        return evaluations

    @staticmethod
    def _reject_all(proposals: Sequence[Proposal], reason: str) -> List[ProposalEvaluation]:
        return [ProposalEvaluation(approved=False, reason=reason) for _ in proposals]

    def apply_proposals(self, proposals: Sequence[Proposal], evaluations: Sequence[ProposalEvaluation]) -> int:
        """Write approved proposals to their targets and return how many were applied."""
        applied = 0
        for proposal, evaluation in zip(proposals, evaluations):
            if not evaluation.approved:
                self.log_audit(f"Rejected proposal for {proposal.target}: {evaluation.reason}")
                continue
            file_type = self._resolve_target(proposal.target)
            if file_type is None:
                self.log_audit(f"Rejected proposal for {proposal.target}: not a writable target")
                continue
            self._rt.checker.assert_can_write(_ROLE, file_type)
            current = self._rt.store.read(file_type).raw_markdown.rstrip()
            section = f"## Proposal ({utc_now().date().isoformat()})\n{proposal.content.strip()}"
            self._rt.store.write(file_type, f"{current}\n\n{section}\n")
            self.log_audit(f"Applied proposal to {file_type.value}")
            applied += 1
        return applied

    def _resolve_target(self, target: str) -> Optional[SubstrateFileType]:
        name = target.strip().upper()
        if name.endswith(".MD"):
            name = name[:-3]
        try:
            file_type = SubstrateFileType(name)
        except ValueError:
            LOGGER.warning("Proposal targets unknown file %r", target)
            return None
        if not self._rt.checker.can_write(_ROLE, file_type):
            LOGGER.warning("Proposal targets %s, which the auditor cannot write", file_type.value)
            return None
        return file_type

    def log_audit(self, entry: str) -> None:
        self._rt.checker.assert_can_append(_ROLE, SubstrateFileType.PROGRESS)
        self._rt.store.append(SubstrateFileType.PROGRESS, f"[{_ROLE.value}] {entry}")
