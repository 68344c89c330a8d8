import os
import tempfile

# Must run before inventory_service.config is imported anywhere
_db_dir = tempfile.mkdtemp(prefix="inventory-hub-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'inventory.db')}"
os.environ.setdefault("LOG_LEVEL", "WARNING")
