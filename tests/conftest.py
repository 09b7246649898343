"""Shared fixtures for the PotionPlay test suite."""

from tests.fixtures.conftest import *  # noqa: F401,F403
