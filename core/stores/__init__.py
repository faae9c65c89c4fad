"""Per-aggregate stores and the datastore that groups them."""

from core.stores.base import (
    AuditStore,
    ChildStore,
    CustomerStore,
    Datastore,
    InteractionStore,
    OrderStore,
    StoreSession,
    TaskStore,
)
from core.stores.postgres import PostgresDatastore, PostgresSession
