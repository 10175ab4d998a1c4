"""
Pytest configuration and fixtures for Schedcord tests.
"""

import sys
from pathlib import Path

# Add src directory (and this directory, for the shared fakes) to the path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))
