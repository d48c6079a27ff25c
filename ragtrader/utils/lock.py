import os
import json
import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_LOCK_NAME = "ragtrader.lock"


class LockManager:
    """
    PID lock file so only one bot instance trades at a time.

    A lock whose PID is no longer alive is treated as stale and replaced.
    """

    def __init__(self, lock_file_path: Optional[str] = None):
        if lock_file_path:
            self.lock_path = Path(lock_file_path)
        else:
            self.lock_path = Path(tempfile.gettempdir()) / DEFAULT_LOCK_NAME
        self.acquired = False

    @staticmethod
    def is_pid_running(pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except OSError:
            return False
        return True

    def _read_owner_pid(self) -> Optional[int]:
        try:
            data = json.loads(self.lock_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ Unreadable lock file {self.lock_path} ({e}); replacing it")
            return None
        pid = data.get("pid") if isinstance(data, dict) else None
        return pid if isinstance(pid, int) else None

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True if this process now owns the lock.
        """
        if self.lock_path.exists():
            owner = self._read_owner_pid()
            if owner and owner != os.getpid() and self.is_pid_running(owner):
                logger.error(f"❌ Lock held by running process {owner}: {self.lock_path}")
                return False
            if owner:
                logger.warning(f"⚠️ Stale lock from PID {owner}; taking over")

        payload = {
            "pid": os.getpid(),
            "created_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self.lock_path.write_text(json.dumps(payload, indent=2))
        except OSError as e:
            logger.error(f"❌ Cannot write lock file {self.lock_path}: {e}")
            return False

        self.acquired = True
        logger.info(f"🔒 Lock acquired at {self.lock_path} (PID: {os.getpid()})")
        return True

    def release(self) -> None:
        """Delete the lock file if this process owns it."""
        if not self.acquired:
            return
        self.acquired = False

        if not self.lock_path.exists():
            return
        if self._read_owner_pid() != os.getpid():
            logger.warning("⚠️ Not releasing lock: PID in file does not match current PID.")
            return
        try:
            self.lock_path.unlink()
            logger.info(f"🔓 Lock released: {self.lock_path}")
        except OSError as e:
            logger.error(f"❌ Error releasing lock: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
