"""Tests for the role-tailored system instruction."""

from __future__ import annotations

from datetime import datetime

from clinic_assistant.prompts import get_system_prompt, role_guidance
from clinic_assistant.tools.authorization import CallerContext, Role

NOW = datetime(2026, 3, 2, 9, 30)


class TestSystemPrompt:
    def test_includes_date_and_weekday(self):
        prompt = get_system_prompt(CallerContext.guest(), now=NOW)
        assert "02 March 2026" in prompt
        assert "Monday" in prompt

    def test_guest_guidance_distrusts_role_claims(self):
        prompt = get_system_prompt(CallerContext.guest(), now=NOW)
        assert "not trusted" in prompt
        assert "sign in" in prompt

    def test_dentist_guidance_names_the_user(self):
        guidance = role_guidance(CallerContext(user_id=7, role=Role.DENTIST, name="Dr. Silva"))
        assert "(Dr. Silva)" in guidance
        assert "dentist" in guidance

    def test_admin_guidance_without_name(self):
        guidance = role_guidance(CallerContext(user_id=1, role=Role.ADMIN))
        assert guidance.startswith("The current user is a clinic **administrator**")

    def test_signed_in_user_without_role(self):
        guidance = role_guidance(CallerContext(user_id=3))
        assert "own account" in guidance
