"""
Pytest configuration for the tiledetect test suite.

Puts the project root on the Python path so tests can import the
tiledetect package, the server module and tests.fixtures.
"""

import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))
