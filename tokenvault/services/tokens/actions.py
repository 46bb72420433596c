"""
Token action catalogue and the sensitive-action policy table
"""

from enum import Enum
from typing import Iterable

from pydantic import BaseModel


class TokenAction(str, Enum):
    """Capabilities an API token can grant."""
    ACCOUNT_SEARCH = "account_search"
    ACCOUNT_VIEW = "account_view"
    ACCOUNT_VIEW_PASS = "account_view_pass"
    ACCOUNT_DELETE = "account_delete"
    ACCOUNT_CREATE = "account_create"
    BACKUP_CONFIG = "backup_config"
    CATEGORY_SEARCH = "category_search"
    CATEGORY_VIEW = "category_view"
    CATEGORY_CREATE = "category_create"
    CATEGORY_EDIT = "category_edit"
    CATEGORY_DELETE = "category_delete"
    CLIENT_SEARCH = "client_search"
    CLIENT_VIEW = "client_view"
    CLIENT_CREATE = "client_create"
    CLIENT_EDIT = "client_edit"
    CLIENT_DELETE = "client_delete"
    TAG_SEARCH = "tag_search"
    TAG_VIEW = "tag_view"
    TAG_CREATE = "tag_create"
    TAG_EDIT = "tag_edit"
    TAG_DELETE = "tag_delete"


ACTION_DESCRIPTIONS: dict[TokenAction, str] = {
    TokenAction.ACCOUNT_SEARCH: "Search accounts",
    TokenAction.ACCOUNT_VIEW: "View account",
    TokenAction.ACCOUNT_VIEW_PASS: "View account password",
    TokenAction.ACCOUNT_DELETE: "Delete account",
    TokenAction.ACCOUNT_CREATE: "Create account",
    TokenAction.BACKUP_CONFIG: "Run backup",
    TokenAction.CATEGORY_SEARCH: "Search categories",
    TokenAction.CATEGORY_VIEW: "View category",
    TokenAction.CATEGORY_CREATE: "Create category",
    TokenAction.CATEGORY_EDIT: "Edit category",
    TokenAction.CATEGORY_DELETE: "Delete category",
    TokenAction.CLIENT_SEARCH: "Search clients",
    TokenAction.CLIENT_VIEW: "View client",
    TokenAction.CLIENT_CREATE: "Create client",
    TokenAction.CLIENT_EDIT: "Edit client",
    TokenAction.CLIENT_DELETE: "Delete client",
    TokenAction.TAG_SEARCH: "Search tags",
    TokenAction.TAG_VIEW: "View tag",
    TokenAction.TAG_CREATE: "Create tag",
    TokenAction.TAG_EDIT: "Edit tag",
    TokenAction.TAG_DELETE: "Delete tag",
}

# Actions that expose a password or create an account
DEFAULT_SENSITIVE_ACTIONS = frozenset({
    TokenAction.ACCOUNT_VIEW_PASS,
    TokenAction.ACCOUNT_CREATE,
})


class ActionInfo(BaseModel):
    """Catalogue entry describing one token action"""
    action_id: TokenAction
    description: str
    sensitive: bool


class SensitiveActionPolicy:
    """
    Decides which token actions require a sealed vault.

    The policy is a plain lookup table so that it can be audited and tested
    on its own, independent of the manager that applies it.
    """

    def __init__(self, actions: Iterable[TokenAction] = DEFAULT_SENSITIVE_ACTIONS):
        self._actions = frozenset(TokenAction(a) for a in actions)

    @classmethod
    def from_names(cls, names: str) -> "SensitiveActionPolicy":
        """
        Build a policy from a comma-separated list of action names.

        Args:
            names: e.g. "account_view_pass,account_create"

        Raises:
            ValueError: If a name is not a known token action
        """
        actions = [name.strip() for name in names.split(",") if name.strip()]
        return cls(TokenAction(name) for name in actions)

    @property
    def actions(self) -> frozenset[TokenAction]:
        return self._actions

    def requires_vault(self, action_id: TokenAction) -> bool:
        return TokenAction(action_id) in self._actions

    def catalogue(self) -> list[ActionInfo]:
        """List every token action with its description and sensitivity"""
        return [
            ActionInfo(
                action_id=action,
                description=ACTION_DESCRIPTIONS[action],
                sensitive=action in self._actions,
            )
            for action in TokenAction
        ]
