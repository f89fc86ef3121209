"""
Formula Evaluator for noteguard.

The evaluator walks a prohibited-note formula and decides whether a note
matches it. It is a pure function of its inputs: no I/O, no state shared
between calls, and nothing it is given is mutated.

Design Principles:
    - Fail-open: Any error while evaluating a formula yields False
      ("not prohibited"), so a broken predicate can never block posting
    - One boundary: Errors are caught once, in evaluate(); recursive calls
      let them propagate so a failure anywhere discards the whole verdict
    - Forward-compatible: Unknown formula kinds evaluate to False, while a
      node that failed to load fails the whole evaluation

How it works:
    1. evaluate() receives (subject, user, roles, formula)
    2. _evaluate() dispatches on formula.type
    3. and/or/not recurse, short-circuiting like Python's all()/any()
    4. Leaf predicates read the subject, user or roles directly
"""

from collections.abc import Iterable, Sequence

from noteguard.constants import BLURHASH_GRID, FILE_TYPE_BROWSERSAFE
from noteguard.errors import MalformedFormulaError
from noteguard.logging import get_logger
from noteguard.policy.keywords import KeywordFilter, KeywordMatcher
from noteguard.policy.perceptual import (
    BlurhashDecoder,
    blurhash_distance,
    decode_blurhash,
)
from noteguard.schema import (
    DriveFile,
    Formula,
    InspectionSubject,
    MalformedFormula,
    Role,
    UserRecord,
)

logger = get_logger(__name__)


class FormulaEvaluator:
    """
    Evaluates prohibited-note formulas.

    Usage:
        evaluator = FormulaEvaluator()
        if evaluator.evaluate(subject, user, roles, formula):
            # reject the note

    Attributes:
        matcher: Keyword matcher used by the *MatchOf predicates
        decoder: Blurhash decoder used by hasLikelyBlurhash
        browser_safe_types: MIME types hasBrowserInsafe treats as safe
    """

    def __init__(
        self,
        matcher: KeywordMatcher | None = None,
        decoder: BlurhashDecoder | None = None,
        browser_safe_types: Iterable[str] | None = None,
    ) -> None:
        self.matcher = matcher or KeywordFilter()
        self.decoder = decoder or decode_blurhash
        if browser_safe_types is None:
            self.browser_safe_types = FILE_TYPE_BROWSERSAFE
        else:
            self.browser_safe_types = frozenset(browser_safe_types)

    def with_browser_safe_types(self, types: Iterable[str]) -> "FormulaEvaluator":
        """Return an evaluator sharing this one's matcher and decoder, with another allow-list."""
        return FormulaEvaluator(
            matcher=self.matcher,
            decoder=self.decoder,
            browser_safe_types=types,
        )

    def evaluate(
        self,
        subject: InspectionSubject,
        user: UserRecord,
        roles: Sequence[Role],
        formula: Formula,
    ) -> bool:
        """
        Decide whether the subject matches the formula.

        This is the only place evaluation errors are handled. Whatever goes
        wrong below this call, the answer is False.

        Args:
            subject: The note under inspection
            user: The note's author
            roles: Roles currently assigned to the author
            formula: Root of the formula tree

        Returns:
            True if the note is prohibited
        """
        try:
            return self._evaluate(subject, user, roles, formula)
        except Exception as e:
            logger.warning(
                "formula_evaluation_failed",
                formula_type=getattr(formula, "type", None),
                user_id=getattr(subject, "user_id", None),
                error=repr(e),
            )
            return False

    def _evaluate(
        self,
        subject: InspectionSubject,
        user: UserRecord,
        roles: Sequence[Role],
        formula: Formula,
    ) -> bool:
        if isinstance(formula, MalformedFormula):
            raise MalformedFormulaError(
                formula_type=formula.type, validation_error=formula.error
            )

        kind = formula.type

        # =====================================================================
        # Constants and connectives
        # =====================================================================

        if kind == "true":
            return True
        if kind == "false":
            return False
        if kind == "and":
            return all(self._evaluate(subject, user, roles, v) for v in formula.values)
        if kind == "or":
            return any(self._evaluate(subject, user, roles, v) for v in formula.values)
        if kind == "not":
            return not self._evaluate(subject, user, roles, formula.value)

        # =====================================================================
        # Author
        # =====================================================================

        if kind == "usernameMatchOf":
            return self.matcher.matches(user.username, [formula.pattern])
        if kind == "nameMatchOf":
            return self.matcher.matches(user.name or "", [formula.pattern])
        if kind == "nameIsDefault":
            return user.name == user.username if user.name else True
        if kind == "roleAssignedOf":
            return any(role.id == formula.role_id for role in roles)

        # =====================================================================
        # Text, mentions, replies
        # =====================================================================

        if kind == "hasText":
            return subject.text is not None
        if kind == "textMatchOf":
            return self.matcher.matches(subject.text or "", [formula.pattern])
        if kind == "hasMentions":
            # A reply always mentions the author of the parent note
            if subject.reply_id is not None:
                return True
            return len(subject.mentions) > 0
        if kind == "mentionCountIs":
            return len(subject.mentions) == formula.value
        if kind == "mentionCountMoreThanOrEq":
            return len(subject.mentions) >= formula.value
        if kind == "mentionCountLessThan":
            return len(subject.mentions) < formula.value
        if kind == "isReply":
            return subject.reply_id is not None
        if kind == "isQuoted":
            return subject.renote_id is not None

        # =====================================================================
        # Files
        # =====================================================================

        if kind == "hasFiles":
            return bool(subject.files)
        if kind == "fileCountIs":
            return len(subject.files or []) == formula.value
        if kind == "fileCountMoreThanOrEq":
            return len(subject.files or []) >= formula.value
        if kind == "fileCountLessThan":
            return len(subject.files or []) < formula.value
        if kind == "fileTotalSizeMoreThanOrEq":
            return _total_size(subject.files) >= formula.size
        if kind == "fileTotalSizeLessThan":
            return _total_size(subject.files) < formula.size
        if kind == "hasFileSizeMoreThanOrEq":
            if subject.files is None:
                return False
            return any(f.size >= formula.size for f in subject.files)
        if kind == "hasFileSizeLessThan":
            # No file list counts as "small enough"
            if subject.files is None:
                return True
            return any(f.size < formula.size for f in subject.files)
        if kind == "hasFileMD5Is":
            return any(f.md5 == formula.hash for f in subject.files or [])
        if kind == "hasBrowserInsafe":
            return any(
                f.type not in self.browser_safe_types for f in subject.files or []
            )
        if kind == "hasPictures":
            return any(f.type.startswith("image/") for f in subject.files or [])
        if kind == "hasLikelyBlurhash":
            return self._has_likely_blurhash(subject.files, formula.hash, formula.diff)

        # =====================================================================
        # Hashtags
        # =====================================================================

        if kind == "hasHashtags":
            return len(subject.hashtags) > 0
        if kind == "hashtagCountIs":
            return len(subject.hashtags) == formula.value
        if kind == "hashtagCountMoreThanOrEq":
            return len(subject.hashtags) >= formula.value
        if kind == "hashtagCountLessThan":
            return len(subject.hashtags) < formula.value
        if kind == "hasHashtagMatchOf":
            return any(
                self.matcher.matches(tag, [formula.value]) for tag in subject.hashtags
            )

        # Unknown kind
        return False

    def _has_likely_blurhash(
        self,
        files: list[DriveFile] | None,
        target: str,
        max_diff: float,
    ) -> bool:
        """
        Check whether any file's blurhash is within max_diff of target.

        Unlike other predicates this one handles its own decode failures:
        a bad target hash means no match, a bad file hash only rules out
        that file.
        """
        try:
            expected = self.decoder(target, BLURHASH_GRID, BLURHASH_GRID)
        except Exception:
            return False

        for f in files or []:
            if f.blurhash is None:
                continue
            try:
                actual = self.decoder(f.blurhash, BLURHASH_GRID, BLURHASH_GRID)
                if blurhash_distance(actual, expected) <= max_diff:
                    return True
            except Exception:
                continue
        return False


def _total_size(files: list[DriveFile] | None) -> int:
    return sum(f.size for f in files or [])
