import os
import sys


# Tests import both `backend.*` and `pos_desktop.*`, which live side by side at
# the repo root. Allow running pytest from the repo root or from `backend/`.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)
