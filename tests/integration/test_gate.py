"""
Integration tests for the prohibited-note gate.

Tests cover:
- Unset configuration short-circuits without any lookups
- Configured formulas are evaluated against the looked-up user and roles
- Lookup and configuration failures propagate
- Evaluation failures, including malformed formula nodes, never propagate
"""

import asyncio
from pathlib import Path

import pytest

from noteguard import ProhibitGate
from noteguard.errors import ConfigLoadError, UserNotFoundError
from noteguard.policy import FormulaEvaluator, KeywordMatcher
from noteguard.schema import (
    DriveFile,
    FalseFormula,
    HasBrowserInsafe,
    InspectionSubject,
    ModerationMeta,
    Role,
    RoleAssignedOf,
    TextMatchOf,
    TrueFormula,
    UserRecord,
    load_meta_from_string,
    parse_formula,
)
from noteguard.sources import (
    InMemoryRoleRepository,
    InMemoryUserRepository,
    RoleRepository,
    StaticPolicySource,
    UserRepository,
    YamlPolicySource,
)


# =============================================================================
# Test Fixtures
# =============================================================================


class SpyUserRepository(UserRepository):
    """User lookup that records calls."""

    def __init__(self, users: list[UserRecord]) -> None:
        self.inner = InMemoryUserRepository(users)
        self.calls: list[str] = []

    async def find_user(self, user_id: str) -> UserRecord:
        self.calls.append(user_id)
        return await self.inner.find_user(user_id)


class SpyRoleRepository(RoleRepository):
    """Role lookup that records calls."""

    def __init__(self, assignments: dict[str, list[Role]] | None = None) -> None:
        self.inner = InMemoryRoleRepository(assignments)
        self.calls: list[str] = []

    async def get_roles(self, user_id: str) -> list[Role]:
        self.calls.append(user_id)
        return await self.inner.get_roles(user_id)


class FailingRoleRepository(RoleRepository):
    async def get_roles(self, user_id: str) -> list[Role]:
        raise ConnectionError("role service down")


class ExplodingMatcher(KeywordMatcher):
    def matches(self, text: str, patterns: list[str]) -> bool:
        raise RuntimeError("boom")


@pytest.fixture
def users() -> SpyUserRepository:
    return SpyUserRepository([UserRecord(id="u1", username="alice")])


@pytest.fixture
def role_repo() -> SpyRoleRepository:
    return SpyRoleRepository({"u1": [Role(id="user")]})


def make_gate(formula, users, roles, evaluator=None) -> ProhibitGate:
    meta = ModerationMeta(prohibited_note_pattern=formula)
    return ProhibitGate(StaticPolicySource(meta), users, roles, evaluator)


# =============================================================================
# Gate Tests
# =============================================================================


class TestUnsetPolicy:
    """Tests for the no-formula fast path."""

    def test_unset_returns_false(self, users, role_repo, plain_subject) -> None:
        gate = make_gate(None, users, role_repo)
        assert asyncio.run(gate.is_prohibited(plain_subject)) is False

    def test_unset_skips_lookups(self, users, role_repo, plain_subject) -> None:
        """No user or role lookups happen when no formula is configured."""
        gate = make_gate(None, users, role_repo)
        asyncio.run(gate.is_prohibited(plain_subject))
        assert users.calls == []
        assert role_repo.calls == []

    def test_unset_with_unknown_author(self, role_repo) -> None:
        """The author isn't even looked up, so an unknown author is fine."""
        gate = make_gate(None, InMemoryUserRepository(), role_repo)
        subject = InspectionSubject(user_id="ghost", text="hi")
        assert asyncio.run(gate.is_prohibited(subject)) is False


class TestConfiguredPolicy:
    """Tests for evaluation through the gate."""

    def test_true_formula(self, users, role_repo, plain_subject) -> None:
        gate = make_gate(TrueFormula(), users, role_repo)
        assert asyncio.run(gate.is_prohibited(plain_subject)) is True
        assert users.calls == ["u1"]
        assert role_repo.calls == ["u1"]

    def test_false_formula_still_looks_up(self, users, role_repo, plain_subject) -> None:
        """A constant false formula is a real policy, not an unset one."""
        gate = make_gate(FalseFormula(), users, role_repo)
        assert asyncio.run(gate.is_prohibited(plain_subject)) is False
        assert users.calls == ["u1"]

    def test_roles_from_repository(self, users, role_repo, plain_subject) -> None:
        gate = make_gate(RoleAssignedOf(role_id="admin"), users, role_repo)
        assert asyncio.run(gate.is_prohibited(plain_subject)) is False

        role_repo.inner.assign("u1", Role(id="admin"))
        assert asyncio.run(gate.is_prohibited(plain_subject)) is True

    def test_files_scenario(self, users, role_repo, files_subject) -> None:
        formula = parse_formula({
            "type": "and",
            "values": [
                {"type": "hasFiles"},
                {"type": "fileTotalSizeMoreThanOrEq", "size": 1000},
            ],
        })
        gate = make_gate(formula, users, role_repo)
        assert asyncio.run(gate.is_prohibited(files_subject)) is True

    def test_browser_safe_types_from_meta(self, users, role_repo) -> None:
        meta = ModerationMeta(
            prohibited_note_pattern=HasBrowserInsafe(),
            browser_safe_types=["image/png"],
        )
        gate = ProhibitGate(StaticPolicySource(meta), users, role_repo)
        subject = InspectionSubject(
            user_id="u1",
            files=[DriveFile(size=1, md5="a", type="image/jpeg")],
        )
        assert asyncio.run(gate.is_prohibited(subject)) is True

    def test_browser_safe_types_with_injected_evaluator(self, users, role_repo) -> None:
        """The configured allow-list applies to an injected evaluator too."""
        meta = ModerationMeta(
            prohibited_note_pattern=HasBrowserInsafe(),
            browser_safe_types=["image/png"],
        )
        evaluator = FormulaEvaluator()
        gate = ProhibitGate(StaticPolicySource(meta), users, role_repo, evaluator)
        subject = InspectionSubject(
            user_id="u1",
            files=[DriveFile(size=1, md5="a", type="image/jpeg")],
        )
        assert asyncio.run(gate.is_prohibited(subject)) is True
        # The injected evaluator keeps its own list
        assert "image/jpeg" in evaluator.browser_safe_types

    def test_extra_fields_on_nodes(self, users, role_repo, plain_subject) -> None:
        """Parameters this version doesn't know about don't break the check."""
        meta = load_meta_from_string(
            "prohibitedNotePattern:\n"
            "  type: or\n"
            "  values:\n"
            "    - {type: hasText, caseSensitive: true}\n"
        )
        gate = ProhibitGate(StaticPolicySource(meta), users, role_repo)
        assert asyncio.run(gate.is_prohibited(InspectionSubject(user_id="u1"))) is False
        assert asyncio.run(gate.is_prohibited(plain_subject)) is True

    def test_yaml_policy_source(self, temp_dir: Path, users, role_repo, files_subject, sample_meta_yaml) -> None:
        path = temp_dir / "meta.yaml"
        path.write_text(sample_meta_yaml)
        gate = ProhibitGate(YamlPolicySource(path), users, role_repo)
        assert asyncio.run(gate.is_prohibited(files_subject)) is True


class TestFailures:
    """Tests for failure propagation."""

    def test_unknown_user_propagates(self, role_repo) -> None:
        gate = make_gate(TrueFormula(), InMemoryUserRepository(), role_repo)
        subject = InspectionSubject(user_id="ghost")
        with pytest.raises(UserNotFoundError):
            asyncio.run(gate.is_prohibited(subject))

    def test_role_lookup_failure_propagates(self, users, plain_subject) -> None:
        gate = make_gate(TrueFormula(), users, FailingRoleRepository())
        with pytest.raises(ConnectionError):
            asyncio.run(gate.is_prohibited(plain_subject))

    def test_config_failure_propagates(self, temp_dir: Path, users, role_repo, plain_subject) -> None:
        gate = ProhibitGate(YamlPolicySource(temp_dir / "missing.yaml"), users, role_repo)
        with pytest.raises(ConfigLoadError):
            asyncio.run(gate.is_prohibited(plain_subject))

    def test_evaluation_failure_is_absorbed(self, users, role_repo, plain_subject) -> None:
        """Errors inside the formula become 'not prohibited'."""
        evaluator = FormulaEvaluator(matcher=ExplodingMatcher())
        gate = make_gate(TextMatchOf(pattern="hello"), users, role_repo, evaluator)
        assert asyncio.run(gate.is_prohibited(plain_subject)) is False

    def test_malformed_formula_is_absorbed(self, users, role_repo, plain_subject) -> None:
        """A node missing its parameters loads, and the check says 'not prohibited'."""
        meta = load_meta_from_string(
            "prohibitedNotePattern:\n"
            "  type: and\n"
            "  values:\n"
            "    - {type: hasText}\n"
            "    - {type: fileCountIs}\n"
        )
        gate = ProhibitGate(StaticPolicySource(meta), users, role_repo)
        assert asyncio.run(gate.is_prohibited(plain_subject)) is False

    def test_malformed_formula_under_not(self, users, role_repo, plain_subject) -> None:
        meta = load_meta_from_string(
            "prohibitedNotePattern:\n"
            "  type: not\n"
            "  value: {type: mentionCountIs, value: '2'}\n"
        )
        gate = ProhibitGate(StaticPolicySource(meta), users, role_repo)
        assert asyncio.run(gate.is_prohibited(plain_subject)) is False

    def test_concurrent_checks(self, users, role_repo, plain_subject, files_subject) -> None:
        """Concurrent checks don't interfere with each other."""
        formula = parse_formula({"type": "hasFiles"})
        gate = make_gate(formula, users, role_repo)

        async def run_all() -> list[bool]:
            return await asyncio.gather(
                gate.is_prohibited(plain_subject),
                gate.is_prohibited(files_subject),
                gate.is_prohibited(plain_subject),
            )

        assert asyncio.run(run_all()) == [False, True, False]
