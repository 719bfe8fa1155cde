"""Typed results returned by each iteration of a bounded loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class Succeed:
    value: Any


@dataclass(frozen=True)
class Fail:
    error: Exception


Outcome = Continue | Succeed | Fail

CONTINUE = Continue()
