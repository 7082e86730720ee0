"""Market proposal submission flow."""

from predmarket.proposal.flow import ProposalFlow, ProposalForm, ProposalResult, ProposalStep

__all__ = ["ProposalFlow", "ProposalForm", "ProposalResult", "ProposalStep"]
