"""
One-level undo for cropped entities.

The first crop applied to an entity records its pre-crop image reference.
Later crops leave that baseline alone, so undo always returns to the true
original rather than to an intermediate crop.  Restoring hands the baseline
back and forgets it: the entity is uncropped again and its next crop records
a fresh baseline.
"""

import logging

from creative_crop.errors import NotFoundError
from creative_crop.models import ImageRef

logger = logging.getLogger(__name__)


class EditHistory:
    """Maps entity ids to the image they had before their first crop."""

    def __init__(self):
        self._originals: dict[str, ImageRef] = {}

    def __len__(self):
        return len(self._originals)

    def __contains__(self, entity_id):
        return entity_id in self._originals

    def record_if_absent(self, entity_id: str, image_ref: ImageRef) -> bool:
        """Store *image_ref* as the baseline unless one exists. Returns True if stored."""
        if entity_id in self._originals:
            return False
        self._originals[entity_id] = image_ref
        logger.debug("Recorded undo baseline for %s", entity_id)
        return True

    def has_undo(self, entity_id: str) -> bool:
        return entity_id in self._originals

    def peek(self, entity_id: str) -> ImageRef | None:
        return self._originals.get(entity_id)

    def restore(self, entity_id: str) -> ImageRef:
        """Return and clear the baseline for *entity_id*; NotFoundError if there is none."""
        try:
            ref = self._originals.pop(entity_id)
        except KeyError:
            raise NotFoundError(f"no crop to undo for {entity_id}") from None
        logger.debug("Restored undo baseline for %s", entity_id)
        return ref

    def forget(self, entity_id: str):
        """Drop the baseline, e.g. when the entity is deleted."""
        self._originals.pop(entity_id, None)
