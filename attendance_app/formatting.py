"""Presentation helpers for attendance figures."""

import numpy as np
import pandas as pd

GOOD_STATUS = 'Good'
NEEDS_IMPROVEMENT_STATUS = 'Needs Improvement'


def format_percent_fraction(fraction) -> str:
    """
    Render a 0-1 fraction as a percentage with two decimals.

    Missing, NaN and infinite values render as 0.00%.
    """
    if fraction is None or pd.isna(fraction):
        return "0.00%"
    try:
        value = float(fraction)
    except (ValueError, TypeError):
        return "0.00%"
    if np.isinf(value):
        return "0.00%"
    return f"{value * 100:.2f}%"


def get_status_label(status: str) -> str:
    """Status text as displayed in the table and profile."""
    if status == GOOD_STATUS:
        return '✅ Good'
    return '⚠️ Needs Improvement'


def get_status_color(status: str) -> str:
    """
    Get color code for an attendance status.

    Args:
        status: "Good" or "Needs Improvement"

    Returns:
        Hex color code
    """
    colors = {
        GOOD_STATUS: '#28a745',               # Green
        NEEDS_IMPROVEMENT_STATUS: '#ffc107',  # Amber
    }
    return colors.get(status, '#6c757d')  # Default gray
