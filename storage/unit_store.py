"""Read-only unit lookup used by the export feed."""
from typing import Any, Dict, Optional

from storage.dynamodb_manager import DynamoDBManager


class UnitStore(DynamoDBManager):
    """Units are owned by the surrounding application; this store only reads them."""

    def get_unit(self, unit_id: str) -> Optional[Dict[str, Any]]:
        """
        Look up a unit's title and status.

        Args:
            unit_id: Unit identifier

        Returns:
            Dict with ``id``, ``title`` and ``status``, or None if absent
        """
        item = self.get_item(unit_id)
        if item is None:
            return None
        return {
            'id': item['id'],
            'title': item.get('title', ''),
            'status': item.get('status', 'active'),
        }
