"""
System Wiring Module

Builds the storage backend, entity store, user directory, lifecycle engine
and analytics aggregator from one configuration.
"""

from datetime import datetime
from typing import Callable, Optional
import random

from .analytics import AnalyticsAggregator
from .config import LendingConfig, get_config
from .lifecycle import LoanLifecycleEngine
from .logging_config import get_logger
from .storage import StateStorage, create_storage
from .store import EntityStore
from .users import UserDirectory


class LendingSystem:
    """Lending core with all components initialized"""

    def __init__(
        self,
        config: Optional[LendingConfig] = None,
        storage: Optional[StateStorage] = None,
        id_factory: Optional[Callable[[], str]] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.config = config or get_config()
        self.logger = get_logger("lending.system")

        if storage is None:
            storage = create_storage(
                self.config.storage_backend,
                path=self.config.storage_path,
                key=self.config.storage_key
            )
        self.storage = storage

        self.store = EntityStore(self.storage, id_factory=id_factory)
        self.store.ensure_initialized()

        self.users = UserDirectory(self.store)
        self.engine = LoanLifecycleEngine(self.store, self.config, rng=rng, clock=clock)
        self.analytics = AnalyticsAggregator(self.store)

        if self.config.seed_demo_data and not self.store.snapshot().users:
            from .seed import seed_demo_data
            seed_demo_data(self)
            self.logger.info("Seeded demo data into empty store")

    def close(self) -> None:
        self.store.close()
