# tests/test_runtime_profile.py

"""Tests for environment-resolved runtime profiles."""

import dataclasses
import unittest

from secondhand_search.config.runtime_profile import (
    RuntimeProfile,
    is_serverless,
    resolve_profile,
)
from secondhand_search.config.settings import Settings


class TestServerlessDetection(unittest.TestCase):
    """is_serverless env flag handling."""

    def test_plain_environment(self) -> None:
        self.assertFalse(is_serverless({}))

    def test_serverless_flag(self) -> None:
        self.assertTrue(is_serverless({"SERVERLESS": "1"}))

    def test_vercel_flags(self) -> None:
        self.assertTrue(is_serverless({"VERCEL": "1"}))
        self.assertTrue(is_serverless({"VERCEL_ENV": "production"}))

    def test_flag_must_be_one(self) -> None:
        self.assertFalse(is_serverless({"SERVERLESS": "0"}))


class TestResolveProfile(unittest.TestCase):
    """resolve_profile budgets per environment."""

    def test_local_profile_defaults(self) -> None:
        """Local runs use the tight budgets."""
        profile = resolve_profile({})
        self.assertFalse(profile.serverless)
        self.assertEqual(profile.total_timeout, 25.0)
        self.assertEqual(profile.parallel_limit, 2)
        self.assertIsNone(profile.executable_path)
        self.assertEqual(
            profile.fast_fetch_timeout,
            float(Settings.FAST_FETCH_TIMEOUT),
        )

    def test_serverless_profile_is_more_generous(self) -> None:
        """Serverless cold starts get longer budgets."""
        local = resolve_profile({})
        serverless = resolve_profile({"SERVERLESS": "1"})
        self.assertTrue(serverless.serverless)
        self.assertGreater(serverless.total_timeout, local.total_timeout)
        self.assertGreater(
            serverless.launch_timeout, local.launch_timeout
        )
        self.assertEqual(serverless.parallel_limit, 3)

    def test_executable_override(self) -> None:
        profile = resolve_profile(
            {"CHROMIUM_EXECUTABLE_PATH": "/opt/chromium/chrome"}
        )
        self.assertEqual(profile.executable_path, "/opt/chromium/chrome")

    def test_region_override(self) -> None:
        profile = resolve_profile({"DANGGEUN_REGION": "역삼동-6035"})
        self.assertEqual(profile.danggeun_region, "역삼동-6035")

    def test_profile_is_frozen(self) -> None:
        """A resolved profile cannot be mutated after startup."""
        profile = RuntimeProfile()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            profile.total_timeout = 1.0  # type: ignore[misc]

    def test_danggeun_gets_slow_budget(self) -> None:
        profile = RuntimeProfile()
        self.assertEqual(
            profile.timeout_for("danggeun"), profile.slow_source_timeout
        )
        self.assertEqual(
            profile.timeout_for("bunjang"), profile.source_timeout
        )


if __name__ == "__main__":
    unittest.main()
