"""
Pytest configuration for the CHIP-8 test suite.

    python -m pytest                 # full suite
    python -m pytest -m "not display"  # skip pygame surface tests

pygame tests run against SDL's dummy video/audio drivers so no window or
sound device is needed.
"""

import os

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "display: tests that need pygame (skipped when it is not installed)")
