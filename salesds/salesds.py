"""
SalesDS context object: builds the cache tiers, store registry, validator,
record coordinator and persistence sync once, wires them together, and owns
the periodic cleanup and autosave tasks.
"""

from pathlib import Path
from typing import Callable, Optional

from .cache_manager import CacheManager
from .config import SalesDSConfig, load_config
from .interfaces import RemoteDocumentStore
from .logger import SalesDSLogger, get_logger
from .persistence import PersistenceSync
from .records import RecordCoordinator
from .registry import StoreRegistry, default_registry
from .scheduler import PeriodicTask
from .storage import DurableStorage, SessionStorage
from .validation import Validator


class SalesDS:
    """
    Cache and data-synchronization layer of the sales dashboard:
    Memory -> Session -> Durable cache tiers in front of named record stores.
    """

    def __init__(self, storage_path: str = None, debug: bool = None, config_path: str = None,
                 config: SalesDSConfig = None, registry: StoreRegistry = None,
                 remote: Optional[RemoteDocumentStore] = None,
                 access_check: Optional[Callable[[], bool]] = None):
        """
        Initialize SalesDS with configuration support.

        Args:
            storage_path: Override storage path (uses config if None)
            debug: Override debug flag (uses config if None)
            config_path: Path to custom config file
            config: Pre-loaded config object (takes precedence over config_path)
            registry: Store registry (defaults to the dashboard's four stores)
            remote: Remote document store collaborator
            access_check: Callable returning True when mutations are permitted
        """
        self.config = config if config is not None else load_config(config_path)

        self.storage_path = Path(storage_path or self.config.storage.base_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.debug = debug if debug is not None else self.config.debug.enabled

        SalesDSLogger.setup(
            log_dir=str(self.storage_path / self.config.storage.logs_dir),
            log_level="DEBUG" if self.debug else self.config.logging.level,
            console_output=self.config.logging.console_output,
        )
        self.logger = get_logger("SalesDS")

        self.session_storage = SessionStorage(self.config.storage.session_quota_bytes)
        self.durable_storage = DurableStorage(
            self.storage_path / self.config.storage.durable_dir,
            self.config.storage.durable_quota_bytes,
        )
        self.cache = CacheManager(self.session_storage, self.durable_storage, config=self.config)

        self.registry = registry if registry is not None else default_registry()
        self.validator = Validator(self.registry, config=self.config)
        self.records = RecordCoordinator(
            self.registry, self.validator, self.cache,
            remote=remote, access_check=access_check, config=self.config,
        )
        self.persistence = PersistenceSync(self.registry, self.durable_storage,
                                           on_load=self.records.refresh_cache)

        self.cleanup_task = PeriodicTask("cache-cleanup", self.config.cache.cleanup_interval_s,
                                         self.cache.cleanup)
        self.autosave_task = PeriodicTask("autosave", self.config.sync.autosave_interval_s,
                                          self.persistence.save_all_async)
        self._started = False
        self._closed = False

        self.logger.info(f"Storage path: {self.storage_path}")
        self.logger.info(f"Stores: {', '.join(self.registry.names())}")

    async def start(self):
        """Load snapshots, then start the cleanup and autosave tasks. Idempotent."""
        if self._started:
            return
        self._started = True

        self.logger.info("=== Loading store snapshots ===")
        self.persistence.load_all()
        if self.records.remote is not None:
            await self.records.sync_from_remote()

        self.cleanup_task.start()
        self.autosave_task.start()

    async def close(self):
        """Stop background tasks and write a final snapshot. Calling again is a no-op."""
        if self._closed:
            return
        self._closed = True

        await self.cleanup_task.stop()
        await self.autosave_task.stop()
        await self.persistence.save_all_async()
        self.logger.info("Cleanup complete")

    def get_stats(self) -> dict:
        """Get cache, store and storage statistics."""
        return {
            "cache": self.cache.get_stats(),
            "stores": self.records.get_statistics(),
            "durable_storage": self.durable_storage.get_stats(),
            "snapshot_saves": self.persistence.save_count,
            "storage_path": str(self.storage_path),
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
