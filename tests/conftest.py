import os, sys
from pathlib import Path

# Add src/ to sys.path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

# Keep tests independent of any local config.toml / .env overrides
os.environ.setdefault("FRIENDCLUB_CONFIG", str(Path(__file__).resolve().parent / "missing-config.toml"))
os.environ.setdefault("FC_COLLECTION", "is.keith.fc.message")
os.environ.setdefault("CACHE_LENGTH", "20")
os.environ.setdefault("CACHE_SNAPSHOT_PATH", "")
os.environ.setdefault("PLC_DIRECTORY_URL", "https://plc.test")
os.environ.setdefault("BASE_URL", "https://fc.test")
