"""TM stores shared between working copies."""

from transmem.stores.fs_delegate import FsStoreDelegate
from transmem.stores.jsonl_tm_store import TmStore, JsonlTmStore

__all__ = ['FsStoreDelegate', 'TmStore', 'JsonlTmStore']
