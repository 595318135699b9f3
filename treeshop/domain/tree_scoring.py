# treeshop/domain/tree_scoring.py
"""
TreeScore / TrimScore point formulas.

  TreeScore = H * DBH^2 + CR^2
  TrimScore = H * DBH * CR^2 * (percent_to_trim / 100)

H = height (ft), DBH = diameter at breast height (in), CR = canopy radius (ft).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from treeshop.errors import InvalidInputError, require_non_negative


@dataclass(frozen=True)
class TreeScores:
    crown_spread: float
    tree_score: float
    trim_score: Optional[float]  # None until a trim percentage is assessed


def tree_score(height: float, dbh: float, canopy_radius: float) -> float:
    height = require_non_negative("height", height)
    dbh = require_non_negative("dbh", dbh)
    canopy_radius = require_non_negative("canopy_radius", canopy_radius)
    return height * (dbh * dbh) + canopy_radius * canopy_radius


def trim_score(height: float, dbh: float, canopy_radius: float, percent_to_trim: float) -> float:
    height = require_non_negative("height", height)
    dbh = require_non_negative("dbh", dbh)
    canopy_radius = require_non_negative("canopy_radius", canopy_radius)
    percent_to_trim = require_percent("percent_to_trim", percent_to_trim)
    return height * dbh * (canopy_radius * canopy_radius) * (percent_to_trim / 100.0)


def require_percent(name: str, value: float) -> float:
    value = require_non_negative(name, value)
    if value > 100:
        raise InvalidInputError(f"{name} must be between 0 and 100", meta={"field": name, "value": value})
    return value


def score_tree(
    height: float,
    dbh: float,
    canopy_radius: float,
    percent_to_trim: Optional[float] = None,
) -> TreeScores:
    """All derived tree fields in one pass; raises before anything is returned."""
    ts = tree_score(height, dbh, canopy_radius)
    trim = None
    if percent_to_trim is not None:
        trim = trim_score(height, dbh, canopy_radius, percent_to_trim)
    return TreeScores(
        crown_spread=float(canopy_radius) * 2,
        tree_score=ts,
        trim_score=trim,
    )
