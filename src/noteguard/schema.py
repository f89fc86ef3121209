"""
Schema definitions for noteguard.

This module defines the Pydantic models used throughout noteguard:
- Formula: the recursive tagged union describing a moderation policy
- InspectionSubject/DriveFile/Mention: the note under inspection
- UserRecord/Role: what we know about the note's author
- ModerationMeta: the configuration document carrying the active formula

Design Decisions:
    - All models are immutable (frozen=True); the evaluator never copies or
      mutates them
    - Formula nodes use the camelCase wire names of the authoring surface
      (`roleId`, `prohibitedNotePattern`) as aliases, with snake_case
      attributes in Python
    - Formula kinds this version doesn't know about still load, as
      UnknownFormula, so newer formulas degrade to "no match" instead of
      failing to load
    - A node whose data doesn't fit its kind loads as MalformedFormula and
      makes the whole evaluation fail open, instead of failing the document
"""

from pathlib import Path
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    StrictInt,
    Tag,
    TypeAdapter,
    ValidationError,
    ValidatorFunctionWrapHandler,
    WrapValidator,
    field_validator,
    model_serializer,
)

from noteguard.errors import ConfigLoadError, FormulaValidationError


# =============================================================================
# Subject Models
# =============================================================================


class DriveFile(BaseModel):
    """
    A file attached to a note.

    Attributes:
        size: Size in bytes
        md5: MD5 hex digest of the file content
        type: MIME type as stored for the file
        blurhash: Perceptual hash of the file's image, if one was computed
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    size: int = Field(..., description="Size in bytes", ge=0)
    md5: str = Field(..., description="MD5 hex digest of the content")
    type: str = Field(..., description="MIME type")
    blurhash: str | None = Field(default=None, description="Blurhash of the image")


class Mention(BaseModel):
    """A user mentioned in a note. `host` is None for local users."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    username: str
    host: str | None = None


class InspectionSubject(BaseModel):
    """
    Snapshot of the note being inspected.

    Attributes:
        user_id: ID of the note's author
        text: Note body, None when the note has no text
        reply_id: ID of the note being replied to
        renote_id: ID of the note being quoted/renoted
        files: Attached files, None when the note carries no file list
        mentions: Users mentioned in the note
        hashtags: Hashtags used in the note (without the leading #)
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    text: str | None = None
    reply_id: str | None = Field(default=None, alias="replyId")
    renote_id: str | None = Field(default=None, alias="renoteId")
    files: list[DriveFile] | None = None
    mentions: list[Mention] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)


# =============================================================================
# Author Models
# =============================================================================


class UserRecord(BaseModel):
    """
    The author's profile.

    Attributes:
        id: User ID
        username: Handle, without the leading @
        host: Remote host, None for local users
        name: Display name, None when the user never set one
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    username: str
    host: str | None = None
    name: str | None = None


class Role(BaseModel):
    """A role assigned to a user."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str = ""


# =============================================================================
# Formula Models
# =============================================================================


class _FormulaNode(BaseModel):
    # Fields added by newer authoring surfaces are ignored
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class TrueFormula(_FormulaNode):
    type: Literal["true"] = "true"


class FalseFormula(_FormulaNode):
    type: Literal["false"] = "false"


class AndFormula(_FormulaNode):
    """Matches when every child matches. An empty list matches."""

    type: Literal["and"] = "and"
    values: list["Formula"] = Field(default_factory=list)


class OrFormula(_FormulaNode):
    """Matches when any child matches. An empty list never matches."""

    type: Literal["or"] = "or"
    values: list["Formula"] = Field(default_factory=list)


class NotFormula(_FormulaNode):
    type: Literal["not"] = "not"
    value: "Formula"


# --- author ---


class UsernameMatchOf(_FormulaNode):
    type: Literal["usernameMatchOf"] = "usernameMatchOf"
    pattern: str


class NameMatchOf(_FormulaNode):
    type: Literal["nameMatchOf"] = "nameMatchOf"
    pattern: str


class NameIsDefault(_FormulaNode):
    type: Literal["nameIsDefault"] = "nameIsDefault"


class RoleAssignedOf(_FormulaNode):
    type: Literal["roleAssignedOf"] = "roleAssignedOf"
    role_id: str = Field(..., alias="roleId")


# --- text ---


class HasText(_FormulaNode):
    type: Literal["hasText"] = "hasText"


class TextMatchOf(_FormulaNode):
    type: Literal["textMatchOf"] = "textMatchOf"
    pattern: str


# --- mentions, replies and quotes ---


class HasMentions(_FormulaNode):
    type: Literal["hasMentions"] = "hasMentions"


class MentionCountIs(_FormulaNode):
    type: Literal["mentionCountIs"] = "mentionCountIs"
    value: StrictInt


class MentionCountMoreThanOrEq(_FormulaNode):
    type: Literal["mentionCountMoreThanOrEq"] = "mentionCountMoreThanOrEq"
    value: StrictInt


class MentionCountLessThan(_FormulaNode):
    type: Literal["mentionCountLessThan"] = "mentionCountLessThan"
    value: StrictInt


class IsReply(_FormulaNode):
    type: Literal["isReply"] = "isReply"


class IsQuoted(_FormulaNode):
    type: Literal["isQuoted"] = "isQuoted"


# --- files ---


class HasFiles(_FormulaNode):
    type: Literal["hasFiles"] = "hasFiles"


class FileCountIs(_FormulaNode):
    type: Literal["fileCountIs"] = "fileCountIs"
    value: StrictInt


class FileCountMoreThanOrEq(_FormulaNode):
    type: Literal["fileCountMoreThanOrEq"] = "fileCountMoreThanOrEq"
    value: StrictInt


class FileCountLessThan(_FormulaNode):
    type: Literal["fileCountLessThan"] = "fileCountLessThan"
    value: StrictInt


class FileTotalSizeMoreThanOrEq(_FormulaNode):
    type: Literal["fileTotalSizeMoreThanOrEq"] = "fileTotalSizeMoreThanOrEq"
    size: StrictInt


class FileTotalSizeLessThan(_FormulaNode):
    type: Literal["fileTotalSizeLessThan"] = "fileTotalSizeLessThan"
    size: StrictInt


class HasFileSizeMoreThanOrEq(_FormulaNode):
    type: Literal["hasFileSizeMoreThanOrEq"] = "hasFileSizeMoreThanOrEq"
    size: StrictInt


class HasFileSizeLessThan(_FormulaNode):
    type: Literal["hasFileSizeLessThan"] = "hasFileSizeLessThan"
    size: StrictInt


class HasFileMD5Is(_FormulaNode):
    type: Literal["hasFileMD5Is"] = "hasFileMD5Is"
    hash: str


class HasBrowserInsafe(_FormulaNode):
    type: Literal["hasBrowserInsafe"] = "hasBrowserInsafe"


class HasPictures(_FormulaNode):
    type: Literal["hasPictures"] = "hasPictures"


class HasLikelyBlurhash(_FormulaNode):
    """
    Matches when an attached image looks like the given blurhash.

    Attributes:
        hash: Target blurhash
        diff: Maximum summed per-component difference still considered alike
    """

    type: Literal["hasLikelyBlurhash"] = "hasLikelyBlurhash"
    hash: str
    diff: float


# --- hashtags ---


class HasHashtags(_FormulaNode):
    type: Literal["hasHashtags"] = "hasHashtags"


class HashtagCountIs(_FormulaNode):
    type: Literal["hashtagCountIs"] = "hashtagCountIs"
    value: StrictInt


class HashtagCountMoreThanOrEq(_FormulaNode):
    type: Literal["hashtagCountMoreThanOrEq"] = "hashtagCountMoreThanOrEq"
    value: StrictInt


class HashtagCountLessThan(_FormulaNode):
    type: Literal["hashtagCountLessThan"] = "hashtagCountLessThan"
    value: StrictInt


class HasHashtagMatchOf(_FormulaNode):
    """Matches when any hashtag matches `value`, a keyword pattern."""

    type: Literal["hasHashtagMatchOf"] = "hasHashtagMatchOf"
    value: str


class UnknownFormula(BaseModel):
    """
    A formula kind this version doesn't implement.

    Extra fields are kept so the node survives a load/dump round trip.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str | None = None


class MalformedFormula(BaseModel):
    """
    A formula node whose data doesn't fit its kind.

    Loading never fails on such a node; evaluating it raises, which makes
    the whole evaluation "not prohibited".

    Attributes:
        type: The kind the node claimed to be, if any
        raw: The node data as it was received
        error: Why the data was rejected
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str | None = None
    raw: Any = None
    error: str = ""

    @model_serializer
    def _dump_raw(self) -> Any:
        return self.raw


KNOWN_FORMULA_TYPES: dict[str, type[BaseModel]] = {
    model.model_fields["type"].default: model
    for model in (
        TrueFormula,
        FalseFormula,
        AndFormula,
        OrFormula,
        NotFormula,
        UsernameMatchOf,
        NameMatchOf,
        NameIsDefault,
        RoleAssignedOf,
        HasText,
        TextMatchOf,
        HasMentions,
        MentionCountIs,
        MentionCountMoreThanOrEq,
        MentionCountLessThan,
        IsReply,
        IsQuoted,
        HasFiles,
        FileCountIs,
        FileCountMoreThanOrEq,
        FileCountLessThan,
        FileTotalSizeMoreThanOrEq,
        FileTotalSizeLessThan,
        HasFileSizeMoreThanOrEq,
        HasFileSizeLessThan,
        HasFileMD5Is,
        HasBrowserInsafe,
        HasPictures,
        HasLikelyBlurhash,
        HasHashtags,
        HashtagCountIs,
        HashtagCountMoreThanOrEq,
        HashtagCountLessThan,
        HasHashtagMatchOf,
    )
}


def _formula_tag(value: Any) -> str:
    """Pick the union member for raw data or an already-built node."""
    if isinstance(value, MalformedFormula):
        return "malformed"
    if isinstance(value, dict):
        kind = value.get("type")
    else:
        kind = getattr(value, "type", None)
    if isinstance(kind, str) and kind in KNOWN_FORMULA_TYPES:
        return kind
    return "unknown"


def _tolerate_malformed(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    """Load a node that fails validation as a MalformedFormula."""
    try:
        return handler(value)
    except ValidationError as e:
        kind = value.get("type") if isinstance(value, dict) else None
        return MalformedFormula(
            type=kind if isinstance(kind, str) else None,
            raw=value,
            error=str(e),
        )


Formula = Annotated[
    Union[
        Annotated[TrueFormula, Tag("true")],
        Annotated[FalseFormula, Tag("false")],
        Annotated[AndFormula, Tag("and")],
        Annotated[OrFormula, Tag("or")],
        Annotated[NotFormula, Tag("not")],
        Annotated[UsernameMatchOf, Tag("usernameMatchOf")],
        Annotated[NameMatchOf, Tag("nameMatchOf")],
        Annotated[NameIsDefault, Tag("nameIsDefault")],
        Annotated[RoleAssignedOf, Tag("roleAssignedOf")],
        Annotated[HasText, Tag("hasText")],
        Annotated[TextMatchOf, Tag("textMatchOf")],
        Annotated[HasMentions, Tag("hasMentions")],
        Annotated[MentionCountIs, Tag("mentionCountIs")],
        Annotated[MentionCountMoreThanOrEq, Tag("mentionCountMoreThanOrEq")],
        Annotated[MentionCountLessThan, Tag("mentionCountLessThan")],
        Annotated[IsReply, Tag("isReply")],
        Annotated[IsQuoted, Tag("isQuoted")],
        Annotated[HasFiles, Tag("hasFiles")],
        Annotated[FileCountIs, Tag("fileCountIs")],
        Annotated[FileCountMoreThanOrEq, Tag("fileCountMoreThanOrEq")],
        Annotated[FileCountLessThan, Tag("fileCountLessThan")],
        Annotated[FileTotalSizeMoreThanOrEq, Tag("fileTotalSizeMoreThanOrEq")],
        Annotated[FileTotalSizeLessThan, Tag("fileTotalSizeLessThan")],
        Annotated[HasFileSizeMoreThanOrEq, Tag("hasFileSizeMoreThanOrEq")],
        Annotated[HasFileSizeLessThan, Tag("hasFileSizeLessThan")],
        Annotated[HasFileMD5Is, Tag("hasFileMD5Is")],
        Annotated[HasBrowserInsafe, Tag("hasBrowserInsafe")],
        Annotated[HasPictures, Tag("hasPictures")],
        Annotated[HasLikelyBlurhash, Tag("hasLikelyBlurhash")],
        Annotated[HasHashtags, Tag("hasHashtags")],
        Annotated[HashtagCountIs, Tag("hashtagCountIs")],
        Annotated[HashtagCountMoreThanOrEq, Tag("hashtagCountMoreThanOrEq")],
        Annotated[HashtagCountLessThan, Tag("hashtagCountLessThan")],
        Annotated[HasHashtagMatchOf, Tag("hasHashtagMatchOf")],
        Annotated[UnknownFormula, Tag("unknown")],
        Annotated[MalformedFormula, Tag("malformed")],
    ],
    Discriminator(_formula_tag),
    WrapValidator(_tolerate_malformed),
]

AndFormula.model_rebuild()
OrFormula.model_rebuild()
NotFormula.model_rebuild()

_formula_adapter: TypeAdapter[Any] = TypeAdapter(Formula)


# =============================================================================
# Configuration Models
# =============================================================================


class ModerationMeta(BaseModel):
    """
    Instance-wide moderation configuration.

    Attributes:
        prohibited_note_pattern: The active formula, None when unset
        browser_safe_types: Overrides the built-in browser-safe MIME list
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    prohibited_note_pattern: Formula | None = Field(
        default=None,
        alias="prohibitedNotePattern",
        description="The active formula (None = no policy configured)",
    )
    browser_safe_types: list[str] | None = Field(
        default=None,
        alias="browserSafeTypes",
        description="Overrides the built-in browser-safe MIME allow-list",
    )

    @field_validator("prohibited_note_pattern", mode="before")
    @classmethod
    def empty_pattern_is_unset(cls, v: Any) -> Any:
        """An empty mapping, or one without a type, means no formula."""
        if isinstance(v, dict) and not v.get("type"):
            return None
        return v


# =============================================================================
# Loading Helpers
# =============================================================================


def parse_formula(data: Any) -> Formula:
    """
    Validate raw data (as decoded from YAML/JSON) into a formula node.

    Never fails: unknown kinds come back as UnknownFormula and nodes that
    don't fit their kind as MalformedFormula, at any depth.
    """
    return _formula_adapter.validate_python(data)


def dump_formula(formula: Formula) -> dict[str, Any]:
    """Serialize a formula node back to its camelCase wire shape."""
    return _formula_adapter.dump_python(formula, by_alias=True, mode="json")


def _read_yaml(path: Path | str) -> Any:
    path = Path(path)
    try:
        with path.open() as f:
            return yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigLoadError(path=str(path), underlying_error=str(e)) from e


def load_formula(path: Path | str) -> Formula:
    """Load a single formula from a YAML file."""
    return parse_formula(_read_yaml(path))


def load_meta(path: Path | str) -> ModerationMeta:
    """
    Load moderation configuration from a YAML file.

    Raises:
        ConfigLoadError: If the file can't be read or isn't valid YAML
        FormulaValidationError: If the document doesn't match the schema
    """
    return _validate_meta(_read_yaml(path))


def load_meta_from_string(content: str) -> ModerationMeta:
    """Load moderation configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(path="<string>", underlying_error=str(e)) from e
    return _validate_meta(data)


def _validate_meta(data: Any) -> ModerationMeta:
    try:
        return ModerationMeta.model_validate(data or {})
    except ValidationError as e:
        raise FormulaValidationError(validation_error=str(e)) from e


def load_subject(path: Path | str) -> InspectionSubject:
    """Load an inspection subject from a YAML file."""
    data = _read_yaml(path)
    try:
        return InspectionSubject.model_validate(data)
    except ValidationError as e:
        raise ConfigLoadError(path=str(path), underlying_error=str(e)) from e
