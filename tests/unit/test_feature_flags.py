"""
Tests for FeatureFlagService resolution order.
"""

from template_interview.services.feature_flags import DEFAULT_FLAGS, FeatureFlagService


class TestFeatureFlags:

    def test_defaults_apply_without_environment(self):
        flags = FeatureFlagService(environ={})
        assert flags.is_enabled("ai_agent")
        assert not flags.is_enabled("ai_template_draft_save")
        assert flags.get_user_flags(1) == DEFAULT_FLAGS

    def test_unknown_flag_is_disabled(self):
        assert not FeatureFlagService(environ={}).is_enabled("does_not_exist")

    def test_environment_overrides_defaults(self):
        flags = FeatureFlagService(
            environ={
                "AI_FEATURE_AI_TEMPLATE_DRAFT_SAVE": "true",
                "AI_FEATURE_AI_AGENT": "false",
                "OTHER_VAR": "true",
            }
        )
        assert flags.is_enabled("ai_template_draft_save")
        assert not flags.is_enabled("ai_agent")
        assert not flags.has_flag("other_var")
        assert flags.has_flag("ai_agent")

    def test_user_override_wins_over_global(self):
        flags = FeatureFlagService(environ={})
        flags.set_user_override(7, "ai_template_draft_save", True)
        assert flags.is_enabled("ai_template_draft_save", 7)
        assert not flags.is_enabled("ai_template_draft_save", 8)
        assert not flags.is_enabled("ai_template_draft_save")

    def test_remove_single_and_all_overrides(self):
        flags = FeatureFlagService(environ={})
        flags.set_user_override(7, "ai_agent", False)
        flags.set_user_override(7, "experimental_models", True)

        flags.remove_user_override(7, "ai_agent")
        assert flags.is_enabled("ai_agent", 7)
        assert flags.is_enabled("experimental_models", 7)

        flags.remove_user_override(7)
        assert not flags.is_enabled("experimental_models", 7)

    def test_user_flags_merge_overrides(self):
        flags = FeatureFlagService(environ={"AI_FEATURE_REALTIME_UPDATES": "false"})
        flags.set_user_override(3, "realtime_updates", True)
        assert flags.get_user_flags(3)["realtime_updates"] is True
        assert flags.get_user_flags(4)["realtime_updates"] is False
