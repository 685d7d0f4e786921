"""
Filesystem delegate for TM stores.

All paths are relative to the delegate root, using ``/`` as separator.
"""

from pathlib import Path
from typing import List, Union

from transmem.logger import get_logger

logger = get_logger(__name__)


class FsStoreDelegate:
    """Read and write store files below a base directory."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)

    def __repr__(self):
        return f"FsStoreDelegate({self.base_dir})"

    def _path(self, filename: str) -> Path:
        return self.base_dir / filename

    def exists(self, filename: str) -> bool:
        return self._path(filename).is_file()

    def get_file(self, filename: str) -> str:
        """
        Read a store file.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        with open(self._path(filename), 'r', encoding='utf-8') as f:
            return f.read()

    def save_file(self, filename: str, content: str):
        path = self._path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            f.write(content)
        tmp_path.replace(path)
        logger.debug(f"Saved {path}")

    def delete_file(self, filename: str):
        path = self._path(filename)
        if path.exists():
            path.unlink()
            logger.debug(f"Deleted {path}")

    def list_files(self) -> List[str]:
        """Names of the files directly under the base directory."""
        if not self.base_dir.is_dir():
            return []
        return sorted(p.name for p in self.base_dir.iterdir() if p.is_file())
