"""Pytest configuration for quaver-mirror tests."""
import sys
from pathlib import Path

# Make the package importable without installing it
root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))
