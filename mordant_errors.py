# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_errors.py — Exception and warning taxonomy.

Every failure raised by the core derives from ``MordantError`` and from the
closest builtin, so callers can catch either the project type or the
familiar ``ValueError`` / ``RuntimeError`` / ``MemoryError``.

    InvalidInputError         bad buffers, masks, dimensions, config values
    NoEligiblePixelsError     statistics over an empty eligible set
    BackendUnavailableError   parallel runner missing or dispatch failed
    ResourceExhaustionError   intermediate buffer allocation failed

Degenerate statistics (σ ≈ 0) never raise; they are epsilon-guarded and
reported through ``DegenerateStatisticsWarning``.
"""

from __future__ import annotations

from typing import Optional


class MordantError(Exception):
    """Base class for all Mordant errors."""


class InvalidInputError(MordantError, ValueError):
    """Null or empty buffers, mismatched mask dimensions, bad parameters."""


class NoEligiblePixelsError(MordantError, ValueError):
    """Statistics were requested over a set with zero qualifying pixels."""

    def __init__(self, message: str = "No eligible pixels", *,
                 total: int = 0, alpha_threshold: Optional[float] = None,
                 masked: bool = False) -> None:
        super().__init__(message)
        self.total = total
        self.alpha_threshold = alpha_threshold
        self.masked = masked


class BackendUnavailableError(MordantError, RuntimeError):
    """The parallel kernel runner is absent or a dispatch failed."""

    def __init__(self, message: str, *, backend: str = "",
                 kernel_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.backend = backend
        self.kernel_id = kernel_id


class ResourceExhaustionError(MordantError, MemoryError):
    """An intermediate buffer could not be allocated."""


class DegenerateStatisticsWarning(UserWarning):
    """A channel's standard deviation collapsed below the epsilon guard."""
