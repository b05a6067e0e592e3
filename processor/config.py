"""Runtime configuration for the sync engine."""
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_USER_AGENT = 'OTACalendarSync/1.0 (+ical import)'
DEFAULT_UID_DOMAIN = 'ota-calendar-sync'


@dataclass
class SyncConfig:
    """Configuration for sync and export operations."""
    max_events_per_sync: int = 100
    max_error_count: int = 5
    fetch_timeout: int = 30
    fetch_max_retries: int = 3
    user_agent: str = DEFAULT_USER_AGENT
    uid_domain: str = DEFAULT_UID_DOMAIN
    scheduler_batch_size: int = 50
    reservations_table: str = 'ota-reservations'
    connections_table: str = 'ota-connections'
    conflicts_table: str = 'ota-conflicts'
    sync_runs_table: str = 'ota-sync-runs'
    units_table: str = 'ota-units'
    base_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'SyncConfig':
        """
        Build configuration from environment variables.

        Unset variables fall back to the dataclass defaults.

        Returns:
            SyncConfig instance
        """
        defaults = cls()
        return cls(
            max_events_per_sync=int(
                os.environ.get('MAX_EVENTS_PER_SYNC', defaults.max_events_per_sync)
            ),
            max_error_count=int(
                os.environ.get('MAX_ERROR_COUNT', defaults.max_error_count)
            ),
            fetch_timeout=int(
                os.environ.get('FETCH_TIMEOUT_SECONDS', defaults.fetch_timeout)
            ),
            fetch_max_retries=int(
                os.environ.get('FETCH_MAX_RETRIES', defaults.fetch_max_retries)
            ),
            user_agent=os.environ.get('USER_AGENT', defaults.user_agent),
            uid_domain=os.environ.get('UID_DOMAIN', defaults.uid_domain),
            scheduler_batch_size=int(
                os.environ.get('SCHEDULER_BATCH_SIZE', defaults.scheduler_batch_size)
            ),
            reservations_table=os.environ.get(
                'RESERVATIONS_TABLE', defaults.reservations_table
            ),
            connections_table=os.environ.get(
                'CONNECTIONS_TABLE', defaults.connections_table
            ),
            conflicts_table=os.environ.get(
                'CONFLICTS_TABLE', defaults.conflicts_table
            ),
            sync_runs_table=os.environ.get(
                'SYNC_RUNS_TABLE', defaults.sync_runs_table
            ),
            units_table=os.environ.get('UNITS_TABLE', defaults.units_table),
            base_url=os.environ.get('BASE_URL') or None,
        )
