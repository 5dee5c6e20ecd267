"""
Number formatting for emitted program text
"""

from ncflow import config


def format_number(value: float, decimals: int = config.COORDINATE_PRECISION) -> str:
    """
    Format number for G-code output

    Args:
        value: Numeric value
        decimals: Number of decimal places

    Returns:
        Formatted string without trailing zeros
    """
    formatted = f"{value:.{decimals}f}"
    # Remove trailing zeros and decimal point if not needed
    formatted = formatted.rstrip("0").rstrip(".")
    if formatted in ("-0", ""):
        formatted = "0"
    return formatted


def format_signed(value: float, decimals: int = config.COORDINATE_PRECISION) -> str:
    """Explicitly signed number, as conversational dialects expect (``+10``, ``-2.5``)."""
    text = format_number(value, decimals)
    return text if text.startswith("-") else f"+{text}"
