"""
Unit tests for the license policy classifier.
"""

import pytest

from mailgraph.analysis.license_policy import (
    LicenseAssignment, LicensePolicy, LicenseVerdict, VerdictStatus
)
from mailgraph.model.schemas import NodeKind


@pytest.fixture
def policy():
    return LicensePolicy()


class TestClassify:

    def test_compliant(self, policy):
        verdict = policy.classify(LicenseAssignment("a@contoso.com", ["SPE_E3", "ATP_ENTERPRISE"]))

        assert verdict == LicenseVerdict.compliant()
        assert verdict.is_compliant
        assert verdict.reasons == ()

    def test_sku_case_insensitive(self, policy):
        assert policy.classify(LicenseAssignment("a@contoso.com", ["spe_e5"])).is_compliant

    def test_prohibited_sku(self, policy):
        verdict = policy.classify(LicenseAssignment("a@contoso.com", ["SPE_E3", "DEVELOPERPACK"]))

        assert verdict.status == VerdictStatus.NON_COMPLIANT
        assert verdict.reasons == ("prohibited SKU assigned: DEVELOPERPACK",)

    def test_conflicting_skus(self, policy):
        verdict = policy.classify(LicenseAssignment("a@contoso.com", ["SPE_E3", "SPE_E5"]))

        assert verdict.status == VerdictStatus.NON_COMPLIANT
        assert "conflicting SKUs assigned: SPE_E3 + SPE_E5" in verdict.reasons

    def test_user_without_base_license(self, policy):
        verdict = policy.classify(LicenseAssignment("a@contoso.com", []))

        assert verdict.status == VerdictStatus.NON_COMPLIANT
        assert verdict.reasons == ("user mailbox has no base license",)

    def test_addon_without_base(self, policy):
        verdict = policy.classify(LicenseAssignment("a@contoso.com", ["EMS"]))

        # The missing base license outranks the add-on warning, which is kept
        assert verdict.status == VerdictStatus.NON_COMPLIANT
        assert verdict.reasons == (
            "user mailbox has no base license",
            "add-on without base license: EMS",
        )

    def test_shared_mailbox_with_license(self, policy):
        assignment = LicenseAssignment("shared@contoso.com", ["SPE_E3"],
                                       mailbox_kind=NodeKind.SHARED_MAILBOX)
        verdict = policy.classify(assignment)

        assert verdict == LicenseVerdict.warning(["shared mailbox consumes 1 license(s)"])

    def test_unlicensed_shared_mailbox(self, policy):
        assignment = LicenseAssignment("shared@contoso.com", [], mailbox_kind=NodeKind.SHARED_MAILBOX)
        assert policy.classify(assignment).is_compliant

    def test_disabled_account(self, policy):
        assignment = LicenseAssignment("old@contoso.com", ["SPE_E3"], account_enabled=False)
        verdict = policy.classify(assignment)

        assert verdict.status == VerdictStatus.WARNING
        assert verdict.to_dict() == {
            "status": "Warning",
            "reasons": ["disabled account consumes 1 license(s)"],
        }

    def test_custom_policy(self):
        policy = LicensePolicy(base_skus={"custom_base"}, prohibited_skus=set(), conflicting_skus=[])

        assert policy.classify(LicenseAssignment("a@contoso.com", ["CUSTOM_BASE"])).is_compliant
        assert not policy.classify(LicenseAssignment("a@contoso.com", ["SPE_E3"])).is_compliant


def test_classify_all(policy):
    assignments = [
        LicenseAssignment("a@contoso.com", ["SPE_E3"]),
        LicenseAssignment("b@contoso.com", []),
    ]
    statuses = [(a.user_id, v.status) for a, v in policy.classify_all(assignments)]

    assert statuses == [
        ("a@contoso.com", VerdictStatus.COMPLIANT),
        ("b@contoso.com", VerdictStatus.NON_COMPLIANT),
    ]
