"""
Filesystem channel.

Source resources are the files matching a glob below the source directory;
their resource id is the path relative to it. Translated resources live at
the same relative path below the target directory of each language.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from transmem.logger import get_logger

logger = get_logger(__name__)


class FsChannel:

    def __init__(self, id: str, source_dir: Union[str, Path], target_dir: str,
                 source_glob: str = "**/*.json", prj: Optional[str] = None):
        self.id = id
        self.source_dir = Path(source_dir)
        # Template with a {target_lang} field
        self.target_dir = str(target_dir)
        self.source_glob = source_glob
        self.prj = prj

    def __repr__(self):
        return f"FsChannel({self.id}, {self.source_dir})"

    def target_path(self, target_lang: str, rid: str) -> Path:
        return Path(self.target_dir.format(target_lang=target_lang)) / rid

    def get_resource_stats(self) -> List[Dict[str, Any]]:
        if not self.source_dir.exists():
            logger.warning(f"Source directory {self.source_dir} of channel {self.id} does not exist")
            return []
        stats = []
        for path in sorted(self.source_dir.glob(self.source_glob)):
            if not path.is_file():
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()
            stats.append({
                "id": path.relative_to(self.source_dir).as_posix(),
                "prj": self.prj,
                "modified": modified,
            })
        return stats

    def fetch_resource(self, rid: str) -> str:
        with open(self.source_dir / rid, 'r', encoding='utf-8') as f:
            return f.read()

    def fetch_translated_resource(self, target_lang: str, rid: str) -> str:
        """
        Read the deployed translation of a resource.

        Raises:
            FileNotFoundError: If the resource has no translation yet
        """
        with open(self.target_path(target_lang, rid), 'r', encoding='utf-8') as f:
            return f.read()

    def get_translated_resource_modified(self, target_lang: str, rid: str) -> Optional[str]:
        path = self.target_path(target_lang, rid)
        if not path.is_file():
            return None
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()

    def commit_translated_resource(self, target_lang: str, rid: str, content: Optional[str]):
        path = self.target_path(target_lang, rid)
        if content is None:
            if path.exists():
                path.unlink()
                logger.info(f"Deleted {path}")
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        logger.info(f"Wrote {path}")
