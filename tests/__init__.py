"""
Test suite for Catalog Composer.

This package contains unit tests and batch-level tests for the
compositing engine: bounds detection, alpha refinement, rendering,
layout, compositing and orchestration.
"""

import sys
from pathlib import Path

# Add the project root to the Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
