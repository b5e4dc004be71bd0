"""Tab selection for the dashboard."""

from enum import Enum


class View(Enum):
    """The tabs of the dashboard, in display order."""

    OVERVIEW = "overview"
    PROCESSES = "processes"
    NETWORK = "network"

    @property
    def title(self) -> str:
        """Tab caption."""
        return self.value.capitalize()

    def advance(self) -> "View":
        """Return the tab to the right, wrapping from Network to Overview."""
        return _NEXT[self]

    def retreat(self) -> "View":
        """Return the tab to the left, wrapping from Overview to Network."""
        return _PREVIOUS[self]


_NEXT: dict[View, View] = {
    View.OVERVIEW: View.PROCESSES,
    View.PROCESSES: View.NETWORK,
    View.NETWORK: View.OVERVIEW,
}

_PREVIOUS: dict[View, View] = {after: before for before, after in _NEXT.items()}


class ViewSelector:
    """
    Cursor over the cycle of views.

    There is no terminal state; the selector lives as long as the dashboard.
    """

    def __init__(self, initial: View = View.OVERVIEW) -> None:
        self._current = initial

    def current(self) -> View:
        """Get the active view."""
        return self._current

    def advance(self) -> View:
        """Move to the next view and return it."""
        self._current = self._current.advance()
        return self._current

    def retreat(self) -> View:
        """Move to the previous view and return it."""
        self._current = self._current.retreat()
        return self._current

    def select(self, view: View) -> View:
        """Jump straight to a view."""
        self._current = view
        return self._current
