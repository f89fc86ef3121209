"""
Prohibited-note gate for noteguard.

The gate is the entry point the posting pipeline calls. It gathers what the
evaluator needs and hands over:

Flow:
    1. Fetch the moderation configuration
    2. No formula configured: return False, no further lookups
    3. Look up the author and the author's roles
    4. Evaluate the formula against (subject, user, roles)

Lookup and configuration failures propagate to the caller unchanged. Only
failures during evaluation are absorbed (by the evaluator).
"""

from noteguard.logging import get_logger
from noteguard.policy import FormulaEvaluator
from noteguard.schema import InspectionSubject
from noteguard.sources import PolicySource, RoleRepository, UserRepository

logger = get_logger(__name__)


class ProhibitGate:
    """
    Decides whether a note may be posted.

    Usage:
        gate = ProhibitGate(policy_source, users, roles)
        if await gate.is_prohibited(subject):
            # reject the note

    Attributes:
        policy_source: Supplies the active formula
        users: Author lookup
        roles: Role assignment lookup
        evaluator: Formula evaluator
    """

    def __init__(
        self,
        policy_source: PolicySource,
        users: UserRepository,
        roles: RoleRepository,
        evaluator: FormulaEvaluator | None = None,
    ) -> None:
        self.policy_source = policy_source
        self.users = users
        self.roles = roles
        self.evaluator = evaluator

    async def is_prohibited(self, subject: InspectionSubject) -> bool:
        """
        Check a note against the configured formula.

        Args:
            subject: The note under inspection

        Returns:
            True if the note matches the prohibited-note formula

        Raises:
            Whatever the policy source or the lookups raise
        """
        meta = await self.policy_source.fetch_policy()
        formula = meta.prohibited_note_pattern
        if formula is None:
            logger.debug("no_prohibited_note_formula")
            return False

        user = await self.users.find_user(subject.user_id)
        roles = await self.roles.get_roles(subject.user_id)

        evaluator = self.evaluator or FormulaEvaluator()
        if meta.browser_safe_types is not None:
            evaluator = evaluator.with_browser_safe_types(meta.browser_safe_types)
        result = evaluator.evaluate(subject, user, roles, formula)
        logger.debug(
            "prohibited_note_evaluated",
            user_id=subject.user_id,
            formula_type=formula.type,
            prohibited=result,
        )
        return result
