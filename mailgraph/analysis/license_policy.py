"""
License Policy Classifier
=========================

Rule-based license-compliance checks for per-user SKU assignments.

Output:
- LicenseVerdict with a status (Compliant, NonCompliant, Warning) and the
  list of reasons that produced it

Design Decisions:
-----------------
1. Verdicts are a tagged value, not free text, so callers can filter and
   count them without parsing notes
2. SKU sets are configurable per tenant; defaults cover the common
   Microsoft 365 part numbers
3. Any NonCompliant rule wins over warnings; warning reasons are still kept
   on the verdict
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from ..model.schemas import NodeKind


class VerdictStatus(Enum):
    COMPLIANT = "Compliant"
    NON_COMPLIANT = "NonCompliant"
    WARNING = "Warning"


@dataclass(frozen=True)
class LicenseVerdict:
    """Outcome of classifying one assignment."""
    status: VerdictStatus
    reasons: tuple = ()

    @classmethod
    def compliant(cls) -> "LicenseVerdict":
        return cls(VerdictStatus.COMPLIANT)

    @classmethod
    def non_compliant(cls, reasons: Iterable[str]) -> "LicenseVerdict":
        return cls(VerdictStatus.NON_COMPLIANT, tuple(reasons))

    @classmethod
    def warning(cls, reasons: Iterable[str]) -> "LicenseVerdict":
        return cls(VerdictStatus.WARNING, tuple(reasons))

    @property
    def is_compliant(self) -> bool:
        return self.status == VerdictStatus.COMPLIANT

    def to_dict(self) -> dict:
        return {"status": self.status.value, "reasons": list(self.reasons)}


@dataclass
class LicenseAssignment:
    """Licenses held by one recipient.

    Attributes:
        user_id: Recipient identifier (UPN or address)
        skus: Assigned SKU part numbers (e.g. SPE_E3)
        account_enabled: Whether sign-in is enabled
        mailbox_kind: Kind of mailbox attached to the account
    """
    user_id: str
    skus: list = field(default_factory=list)
    account_enabled: bool = True
    mailbox_kind: NodeKind = NodeKind.USER_MAILBOX


@dataclass
class LicensePolicy:
    """Tenant license rules.

    Attributes:
        base_skus: SKUs that include an Exchange mailbox
        addon_skus: SKUs that are only valid on top of a base SKU
        prohibited_skus: SKUs that must not be assigned
        conflicting_skus: Pairs that must not be assigned together
    """
    base_skus: set = field(default_factory=lambda: {
        "EXCHANGESTANDARD",
        "EXCHANGEENTERPRISE",
        "O365_BUSINESS_ESSENTIALS",
        "O365_BUSINESS_PREMIUM",
        "SPB",
        "STANDARDPACK",
        "ENTERPRISEPACK",
        "ENTERPRISEPREMIUM",
        "SPE_E3",
        "SPE_E5",
        "SPE_F1",
        "STANDARDWOFFPACK_FACULTY",
        "STANDARDWOFFPACK_STUDENT",
    })
    addon_skus: set = field(default_factory=lambda: {
        "EXCHANGEARCHIVE_ADDON",
        "ATP_ENTERPRISE",
        "EMS",
        "MCOMEETADV",
        "Microsoft_Teams_Audio_Conferencing_select_dial_out",
    })
    prohibited_skus: set = field(default_factory=lambda: {
        "DEVELOPERPACK",
        "DEVELOPERPACK_E5",
    })
    conflicting_skus: list = field(default_factory=lambda: [
        ("ENTERPRISEPACK", "SPE_E3"),
        ("ENTERPRISEPREMIUM", "SPE_E5"),
        ("SPE_E3", "SPE_E5"),
        ("O365_BUSINESS_PREMIUM", "SPE_E3"),
    ])

    def __post_init__(self):
        self.base_skus = {s.upper() for s in self.base_skus}
        self.addon_skus = {s.upper() for s in self.addon_skus}
        self.prohibited_skus = {s.upper() for s in self.prohibited_skus}
        self.conflicting_skus = [(a.upper(), b.upper()) for a, b in self.conflicting_skus]

    def classify(self, assignment: LicenseAssignment) -> LicenseVerdict:
        """Classify one assignment against the policy."""
        skus = {s.upper() for s in assignment.skus}
        violations = []
        warnings = []

        for sku in sorted(skus & self.prohibited_skus):
            violations.append(f"prohibited SKU assigned: {sku}")

        for first, second in self.conflicting_skus:
            if first in skus and second in skus:
                violations.append(f"conflicting SKUs assigned: {first} + {second}")

        has_base = bool(skus & self.base_skus)

        if assignment.mailbox_kind == NodeKind.USER_MAILBOX:
            if assignment.account_enabled and not has_base:
                violations.append("user mailbox has no base license")
        elif assignment.mailbox_kind == NodeKind.SHARED_MAILBOX:
            if skus:
                warnings.append(f"shared mailbox consumes {len(skus)} license(s)")

        if not assignment.account_enabled and skus:
            warnings.append(f"disabled account consumes {len(skus)} license(s)")

        if not has_base:
            for sku in sorted(skus & self.addon_skus):
                warnings.append(f"add-on without base license: {sku}")

        if violations:
            return LicenseVerdict.non_compliant(violations + warnings)
        if warnings:
            return LicenseVerdict.warning(warnings)
        return LicenseVerdict.compliant()

    def classify_all(self, assignments: Iterable[LicenseAssignment]) -> Iterator[tuple]:
        """Yield (assignment, verdict) pairs."""
        for assignment in assignments:
            yield assignment, self.classify(assignment)
