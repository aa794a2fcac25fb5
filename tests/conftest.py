"""Shared test fixtures."""

from __future__ import annotations

import os

# Ensure tests don't accidentally call real APIs
os.environ.setdefault("OPENAI_API_KEY", "test-key")
