from typing import Callable, Optional

from opencode_chat.config.models import Preferences


class PreferencesStore:
    """Loads and saves :class:`Preferences` through injected callables.

    Callers read a snapshot with :meth:`load`, change it, and write it back
    with :meth:`save` or :meth:`update`. There is no process-wide instance.
    """

    def __init__(self, load: Callable[[], Preferences], save: Callable[[Preferences], None]):
        self._load = load
        self._save = save

    def load(self) -> Preferences:
        return self._load()

    def save(self, prefs: Preferences) -> None:
        self._save(prefs)

    def update(self, **changes) -> Preferences:
        """Load, apply ``changes`` and save. Returns the saved value."""
        prefs = self.load().model_copy(update=changes)
        self.save(prefs)
        return prefs

    @classmethod
    def in_memory(cls, initial: Optional[Preferences] = None) -> "PreferencesStore":
        state = {"prefs": initial or Preferences()}

        def load() -> Preferences:
            return state["prefs"].model_copy()

        def save(prefs: Preferences) -> None:
            state["prefs"] = prefs.model_copy()

        return cls(load, save)
