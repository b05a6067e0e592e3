"""Append-only SyncRun log backed by DynamoDB."""
import logging
from typing import List, Optional

from processor.models import SyncRun
from storage.dynamodb_manager import (
    DynamoDBManager,
    from_iso_timestamp,
    to_iso_timestamp,
)

logger = logging.getLogger(__name__)

CONNECTION_INDEX = 'connection-index'


class SyncRunStore(DynamoDBManager):
    """One record per orchestrator invocation, finalized once."""

    def create_run(self, run: SyncRun) -> None:
        self.put_item(self._run_to_item(run), only_if_new=True)

    def finalize_run(self, run: SyncRun) -> None:
        """
        Write the final status, counts and completion time of a run.

        Args:
            run: SyncRun carrying its final values
        """
        self.update_fields(run.id, {
            'status': run.status,
            'completed_at': to_iso_timestamp(run.completed_at),
            'items_processed': run.items_processed,
            'items_created': run.items_created,
            'items_updated': run.items_updated,
            'items_failed': run.items_failed,
            'error_message': run.error_message,
        })
        logger.info(f"Sync run {run.id} finished with status {run.status}")

    def get_run(self, run_id: str) -> Optional[SyncRun]:
        item = self.get_item(run_id)
        if item is None:
            return None
        return self._item_to_run(item)

    def list_for_connection(self, connection_id: str, limit: int = 50) -> List[SyncRun]:
        """List a connection's runs, most recent first."""
        items = self.query_index(
            CONNECTION_INDEX, 'connection_id', connection_id,
            ScanIndexForward=False
        )
        runs = [self._item_to_run(item) for item in items]
        runs.sort(key=lambda r: to_iso_timestamp(r.started_at), reverse=True)
        return runs[:limit]

    def _run_to_item(self, run: SyncRun) -> dict:
        return {
            'id': run.id,
            'connection_id': run.connection_id,
            'sync_type': run.sync_type,
            'direction': run.direction,
            'triggered_by': run.triggered_by,
            'status': run.status,
            'started_at': to_iso_timestamp(run.started_at),
            'completed_at': to_iso_timestamp(run.completed_at),
            'items_processed': run.items_processed,
            'items_created': run.items_created,
            'items_updated': run.items_updated,
            'items_failed': run.items_failed,
            'error_message': run.error_message,
        }

    def _item_to_run(self, item: dict) -> SyncRun:
        return SyncRun(
            id=item['id'],
            connection_id=item['connection_id'],
            started_at=from_iso_timestamp(item['started_at']),
            sync_type=item.get('sync_type', 'scheduled'),
            direction=item.get('direction', 'inbound'),
            triggered_by=item.get('triggered_by', 'system'),
            status=item['status'],
            completed_at=from_iso_timestamp(item.get('completed_at')),
            items_processed=int(item.get('items_processed', 0)),
            items_created=int(item.get('items_created', 0)),
            items_updated=int(item.get('items_updated', 0)),
            items_failed=int(item.get('items_failed', 0)),
            error_message=item.get('error_message'),
        )
