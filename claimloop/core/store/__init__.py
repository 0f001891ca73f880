from claimloop.core.store.base import TaskStore
from claimloop.core.store.postgres import PostgresTaskStore
from claimloop.core.store.statements import TableStatements

__all__ = ['TaskStore', 'PostgresTaskStore', 'TableStatements']
