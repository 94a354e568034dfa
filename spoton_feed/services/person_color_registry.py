"""
Stable color assignment for re-identified persons.

Colors are handed out round-robin from a fixed palette. A global ID keeps its
color for as long as it is assigned; releasing it does not rewind the cursor,
so a person that disappears and comes back may be drawn in a different color.
"""
import logging
from typing import Dict, Optional

from spoton_feed.shared.types import GlobalID, PersonColor

logger = logging.getLogger(__name__)

PERSON_COLORS = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#DDA0DD",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E9",
    "#F8C471",
    "#82E0AA",
    "#F1948A",
    "#A3E4D7",
    "#D2B4DE",
)

DEFAULT_PERSON_COLOR = PERSON_COLORS[0]


class PersonColorRegistry:
    """
    Maps global person IDs to display colors.

    With at most len(palette) IDs assigned at once, every assigned ID has a
    distinct color.
    """

    def __init__(self, palette=PERSON_COLORS):
        if not palette:
            raise ValueError("Color palette cannot be empty")
        if len(set(palette)) != len(palette):
            raise ValueError("Color palette entries must be distinct")
        self._palette = tuple(palette)
        self._assignments: Dict[GlobalID, PersonColor] = {}
        self._next_index = 0

    @property
    def palette_size(self) -> int:
        return len(self._palette)

    def color_for(self, global_id: GlobalID) -> PersonColor:
        """Return the color assigned to global_id, assigning the next palette color if needed."""
        color = self._assignments.get(global_id)
        if color is None:
            color = PersonColor(self._palette[self._next_index % len(self._palette)])
            self._next_index = (self._next_index + 1) % len(self._palette)
            self._assignments[global_id] = color
            logger.debug(f"Assigned color {color} to person {global_id}")
        return color

    def get(self, global_id: GlobalID) -> Optional[PersonColor]:
        return self._assignments.get(global_id)

    def release(self, global_id: GlobalID) -> bool:
        """Forget the assignment for global_id. Returns whether one existed."""
        return self._assignments.pop(global_id, None) is not None

    def clear(self) -> None:
        """Drop every assignment and restart from the first palette color."""
        self._assignments.clear()
        self._next_index = 0

    def assignments(self) -> Dict[GlobalID, PersonColor]:
        return dict(self._assignments)

    def __len__(self) -> int:
        return len(self._assignments)

    def __contains__(self, global_id: object) -> bool:
        return global_id in self._assignments
