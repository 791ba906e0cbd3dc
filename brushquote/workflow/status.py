# brushquote/workflow/status.py
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    DEPOSIT_PAID = "deposit_paid"
    SELECTIONS_COMPLETE = "selections_complete"

    @classmethod
    def parse(cls, raw: str) -> "ProposalStatus":
        key = (raw or "").strip().lower()
        # older clients still send "pending" for a sent proposal
        if key == "pending":
            return cls.SENT
        return cls(key)


ALLOWED_TRANSITIONS: Dict[ProposalStatus, FrozenSet[ProposalStatus]] = {
    ProposalStatus.DRAFT: frozenset({ProposalStatus.SENT}),
    ProposalStatus.SENT: frozenset({ProposalStatus.ACCEPTED, ProposalStatus.DECLINED}),
    ProposalStatus.ACCEPTED: frozenset({ProposalStatus.DEPOSIT_PAID}),
    ProposalStatus.DEPOSIT_PAID: frozenset({ProposalStatus.SELECTIONS_COMPLETE}),
    ProposalStatus.DECLINED: frozenset(),
    ProposalStatus.SELECTIONS_COMPLETE: frozenset(),
}


def can_transition(src: ProposalStatus, dst: ProposalStatus) -> bool:
    return dst in ALLOWED_TRANSITIONS.get(src, frozenset())


class PortalLockReason(str, Enum):
    EXPIRED = "expired"
    SELECTIONS_SUBMITTED = "selections_submitted"
