"""Threshold rules that decide when a proposal resolves.

The proposer never votes, so a club of ``n`` members has ``n - 1`` eligible
voters. The member count is read live at every evaluation; a proposal created
in a club of five is tallied against four voters only while the club still
has five members.
"""

from __future__ import annotations

from filmclub.domain.clubs.models import ApprovalMode, ApprovalPolicy
from filmclub.domain.exceptions import ConflictError
from filmclub.domain.proposals.models import ProposalStatus, VoteTally


def eligible_voter_count(member_count: int) -> int:
	return max(member_count - 1, 0)


def majority_threshold(eligible: int) -> int:
	return eligible // 2 + 1


def next_status(policy: ApprovalPolicy, tally: VoteTally, eligible: int) -> ProposalStatus:
	"""Return the status a pending proposal should hold for the given tally."""
	approvals, rejections = tally.approvals, tally.rejections
	if eligible == 0:
		return ProposalStatus.APPROVED

	if policy.mode is ApprovalMode.UNANIMOUS:
		if rejections > 0:
			return ProposalStatus.REJECTED
		if approvals >= eligible:
			return ProposalStatus.APPROVED
		return ProposalStatus.PENDING

	if policy.mode is ApprovalMode.MAJORITY:
		threshold = majority_threshold(eligible)
		if approvals >= threshold:
			return ProposalStatus.APPROVED
		if rejections >= threshold:
			return ProposalStatus.REJECTED
		return ProposalStatus.PENDING

	required = policy.required_approvals or 1
	if approvals >= required:
		return ProposalStatus.APPROVED
	remaining = eligible - approvals - rejections
	if approvals + remaining < required:
		# Not enough voters left to ever reach the requirement.
		return ProposalStatus.REJECTED
	return ProposalStatus.PENDING


def transition(current: ProposalStatus, target: ProposalStatus) -> ProposalStatus:
	"""Move ``current`` to ``target``; terminal states never change."""
	if current.is_terminal:
		if target is current:
			return current
		raise ConflictError("already_resolved")
	return target
