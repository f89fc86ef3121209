"""
Collaborators that supply data to the gate.

The gate never fetches anything itself. It asks three collaborators:
    - PolicySource: the current moderation configuration
    - UserRepository: the author's user record
    - RoleRepository: the roles assigned to the author

Embedding applications implement these against their own storage. The
in-memory and YAML-backed implementations here serve the CLI and tests.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path

from noteguard.errors import UserNotFoundError
from noteguard.schema import ModerationMeta, Role, UserRecord, load_meta


class PolicySource(ABC):
    """Supplies the active moderation configuration."""

    @abstractmethod
    async def fetch_policy(self) -> ModerationMeta:
        """Return the current configuration. A None formula means unset."""
        ...


class UserRepository(ABC):
    """Looks up user records by id."""

    @abstractmethod
    async def find_user(self, user_id: str) -> UserRecord:
        """
        Return the user with the given id.

        Raises:
            UserNotFoundError: If no such user exists
        """
        ...


class RoleRepository(ABC):
    """Looks up the roles currently assigned to a user."""

    @abstractmethod
    async def get_roles(self, user_id: str) -> list[Role]:
        """Return the user's roles (empty if none)."""
        ...


# =============================================================================
# Implementations
# =============================================================================


class StaticPolicySource(PolicySource):
    """Always returns the configuration it was built with."""

    def __init__(self, meta: ModerationMeta | None = None) -> None:
        self.meta = meta or ModerationMeta()

    async def fetch_policy(self) -> ModerationMeta:
        return self.meta


class YamlPolicySource(PolicySource):
    """
    Reads the configuration from a YAML file on every fetch.

    Edits to the file take effect on the next evaluation without a restart.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def fetch_policy(self) -> ModerationMeta:
        return load_meta(self.path)


class InMemoryUserRepository(UserRepository):
    """User lookup over a fixed set of records, keyed by id."""

    def __init__(self, users: Iterable[UserRecord] = ()) -> None:
        self._users = {user.id: user for user in users}

    def add(self, user: UserRecord) -> None:
        self._users[user.id] = user

    async def find_user(self, user_id: str) -> UserRecord:
        try:
            return self._users[user_id]
        except KeyError:
            raise UserNotFoundError(user_id=user_id) from None


class InMemoryRoleRepository(RoleRepository):
    """Role lookup over a fixed user id -> roles mapping."""

    def __init__(self, assignments: Mapping[str, Iterable[Role]] | None = None) -> None:
        self._assignments = {
            user_id: list(roles) for user_id, roles in (assignments or {}).items()
        }

    def assign(self, user_id: str, role: Role) -> None:
        self._assignments.setdefault(user_id, []).append(role)

    async def get_roles(self, user_id: str) -> list[Role]:
        return list(self._assignments.get(user_id, []))
