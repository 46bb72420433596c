"""
Tests for the token action catalogue and sensitive-action policy
"""

import pytest

from tokenvault.services.tokens import SensitiveActionPolicy, TokenAction
from tokenvault.services.tokens.actions import ACTION_DESCRIPTIONS, DEFAULT_SENSITIVE_ACTIONS


class TestSensitiveActionPolicy:

    def test_default_table(self):
        policy = SensitiveActionPolicy()

        assert policy.actions == DEFAULT_SENSITIVE_ACTIONS
        assert policy.requires_vault(TokenAction.ACCOUNT_VIEW_PASS)
        assert policy.requires_vault(TokenAction.ACCOUNT_CREATE)
        assert not policy.requires_vault(TokenAction.ACCOUNT_SEARCH)

    def test_accepts_raw_values(self):
        policy = SensitiveActionPolicy()

        assert policy.requires_vault("account_view_pass")
        assert not policy.requires_vault("tag_view")

    def test_from_names(self):
        policy = SensitiveActionPolicy.from_names(" account_view_pass , backup_config ,")

        assert policy.actions == frozenset({
            TokenAction.ACCOUNT_VIEW_PASS,
            TokenAction.BACKUP_CONFIG,
        })

    def test_from_names_empty(self):
        policy = SensitiveActionPolicy.from_names("")

        assert policy.actions == frozenset()
        assert not policy.requires_vault(TokenAction.ACCOUNT_VIEW_PASS)

    def test_from_names_unknown_action(self):
        with pytest.raises(ValueError):
            SensitiveActionPolicy.from_names("account_view_pass,launch_rockets")


class TestActionCatalogue:

    def test_every_action_described(self):
        assert set(ACTION_DESCRIPTIONS) == set(TokenAction)

    def test_catalogue_flags_sensitive_actions(self):
        catalogue = SensitiveActionPolicy().catalogue()
        sensitive = {info.action_id for info in catalogue if info.sensitive}

        assert len(catalogue) == len(TokenAction)
        assert sensitive == {TokenAction.ACCOUNT_VIEW_PASS, TokenAction.ACCOUNT_CREATE}
