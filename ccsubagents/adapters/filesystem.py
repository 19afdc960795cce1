"""
Filesystem adapter — installs downloaded binaries.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from ccsubagents.adapters.base import BinaryInstaller
from ccsubagents.core.config.paths import BINARY_PERM

logger = logging.getLogger(__name__)


class CopyBinaryInstaller(BinaryInstaller):
    """Copy a binary next to its destination, chmod it, then rename.

    Replacing via rename keeps a running copy of the old binary intact
    (``ETXTBSY`` on Linux otherwise).
    """

    def __init__(self, mode: int = BINARY_PERM):
        self.mode = mode

    def install(self, src: Path, dst: Path) -> None:
        dst.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=dst.parent, prefix=f".{dst.name}-")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as out, src.open("rb") as inp:
                shutil.copyfileobj(inp, out)
            os.chmod(tmp, self.mode)
            os.replace(tmp, dst)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug("Installed binary %s → %s", src.name, dst)
