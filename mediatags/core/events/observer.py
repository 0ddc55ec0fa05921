from typing import Callable, List
from loguru import logger


class Signal:
    """
    Synchronous in-process signal.

    ConfigManager fires `on_changed(section, key, value)` through one of
    these; TagManager listens to rewire its recomputation settings.
    """
    def __init__(self, name: str = "Signal"):
        self.name = name
        self._slots: List[Callable] = []

    def connect(self, slot: Callable) -> Callable:
        """Attach `slot`; returns it so the method works as a decorator."""
        if slot not in self._slots:
            self._slots.append(slot)
        return slot

    def disconnect(self, slot: Callable) -> None:
        if slot in self._slots:
            self._slots.remove(slot)

    def emit(self, *args, **kwargs) -> None:
        """Call every slot in connection order; a failing slot is logged and skipped."""
        for slot in list(self._slots):
            try:
                slot(*args, **kwargs)
            except Exception as e:
                logger.error(f"Signal '{self.name}': slot {getattr(slot, '__name__', slot)} failed: {e}")
