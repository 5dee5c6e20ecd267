"""
Pytest configuration and shared fixtures for the ncflow test suite.

Provides sample programs and marker registration used across the unit tests.
"""

import logging
import math
import os
import sys

import pytest

# Add the parent directory to Python path so we can import the package
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from ncflow.config import TRACE

logger = logging.getLogger(__name__)


# ============================================================================
# SAMPLE PROGRAMS
# ============================================================================

POCKET_PROGRAM = """%
O1000 (POCKET)
N10 G90 G17
N20 G0 X0 Y0 Z5
N30 G1 Z-1 F200

N40 G1 X10 Y0
N50 G1 X10 Y0
N60 G1 X10 Y10 F200
N70 G2 X0 Y10 I-5 J0
N80 G1 X0 Y0
N90 G0 Z5
N100 M30
%
"""

DRILL_PROGRAM = """G90 G17
T1 M6
S1200 M3
G0 X0 Y0 Z10
G81 X10 Y10 Z-10 R2 F100
X20
X30
G80
G0 Z10
M30
"""


@pytest.fixture
def pocket_program() -> str:
    return POCKET_PROGRAM


@pytest.fixture
def drill_program() -> str:
    return DRILL_PROGRAM


@pytest.fixture
def arc_chain_program() -> str:
    """Quarter circle of radius 20 written as eight G1 chords, plus setup and end."""
    lines = ["G90 G17", "G0 X20 Y0 Z0", "G1 X20 Y0 F300"]
    for i in range(1, 9):
        angle = math.radians(90.0 * i / 8)
        lines.append(f"G1 X{20 * math.cos(angle):.4f} Y{20 * math.sin(angle):.4f}")
    lines.append("M30")
    return "\n".join(lines)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that exercise complete workflows"
    )


def pytest_sessionstart(session):
    """Called after the Session object has been created."""
    logging.getLogger("ncflow").setLevel(TRACE if os.getenv("NCFLOW_TRACE") else logging.DEBUG)
    logger.info("Starting ncflow test session")
