import os
import tempfile

# Must run before any project module reads the cached settings.
os.environ.setdefault("BUDGET_DATA_DIR", tempfile.mkdtemp(prefix="budget-tests-"))
os.environ.setdefault("BUDGET_BCRYPT_ROUNDS", "4")
os.environ.setdefault("BUDGET_TIMEZONE", "Asia/Manila")
