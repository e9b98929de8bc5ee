"""Test configuration: exposes the shared fixtures package to every test."""

from tests.fixtures import *  # noqa: F401,F403
