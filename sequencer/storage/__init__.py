"""
Storage backends for the local message/process index.
"""

from abc import ABC, abstractmethod
from typing import List
from pathlib import Path
from sequencer.core.types import Message, Process


class StorageBackend(ABC):
    """
    Append-only local index keyed by entity id.
    Saving an id that is already present raises DuplicateError and leaves the stored value untouched.
    """

    @abstractmethod
    def save_message(self, msg: Message) -> None:
        pass

    @abstractmethod
    def get_message(self, message_id: str) -> Message:
        pass

    @abstractmethod
    def get_messages(self, process_id: str) -> List[Message]:
        """All messages of a process, in no particular order."""

    @abstractmethod
    def save_process(self, process: Process) -> None:
        pass

    @abstractmethod
    def get_process(self, process_id: str) -> Process:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def create_storage(uri: str) -> StorageBackend:
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        raw_path = uri[len("sqlite://"):].lstrip("/")
        if not raw_path.startswith('/'):
            raw_path = '/' + raw_path

        return SQLiteStorage(Path(raw_path).resolve())

    elif uri.startswith("memory://"):
        from .sqlite import SQLiteStorage
        return SQLiteStorage(":memory:")
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "SQLiteStorage"]
