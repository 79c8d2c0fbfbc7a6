import logging
from typing import Iterable, List, Set

from sqlalchemy import Table, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.engine import Connection

from database import Base, Database, LessonSession, Transaction

logger = logging.getLogger(__name__)

# Tables whose columns grow between releases. Missing columns are added,
# nothing is ever dropped, renamed or retyped.
EVOLVING_TABLES = (LessonSession.__table__,)


def _column_ddl(connection: Connection, column) -> str:
    ddl = f"{column.name} {column.type.compile(dialect=connection.dialect)}"
    default = column.server_default.arg if column.server_default is not None else None
    # ALTER TABLE ... ADD COLUMN only accepts constant defaults
    if isinstance(default, str):
        ddl += " DEFAULT '{}'".format(default.replace("'", "''"))
    return ddl


def add_missing_columns(connection: Connection, table: Table) -> List[str]:
    live = {col["name"] for col in inspect(connection).get_columns(table.name)}
    added = []
    for column in table.columns:
        if column.name in live:
            continue
        logger.info("Adding missing column %s.%s", table.name, column.name)
        connection.execute(text(f"ALTER TABLE {table.name} ADD COLUMN {_column_ddl(connection, column)}"))
        added.append(column.name)
    return added


def _create_indexes(connection: Connection, tables: Iterable[Table]) -> None:
    # create_all() skips the indexes of tables that already existed
    for table in tables:
        for index in table.indexes:
            index.create(bind=connection, checkfirst=True)


def migrate(db: Database) -> None:
    """Bring the database to the current schema. Safe to run on every startup."""
    engine = db.engine
    Base.metadata.create_all(bind=engine, checkfirst=True)

    for table in EVOLVING_TABLES:
        try:
            with engine.begin() as connection:
                add_missing_columns(connection, table)
        except SQLAlchemyError:
            # a later write to the missing column fails at its point of use
            logger.exception("Migration error while extending table %s", table.name)

    with engine.begin() as connection:
        _create_indexes(connection, Base.metadata.sorted_tables)

    db.save()
    logger.info("Migrations completed successfully")


def missing_tables(db: Database) -> Set[str]:
    live = set(inspect(db.engine).get_table_names())
    return set(Base.metadata.tables) - live


def ensure_table(tx: Transaction, table: Table) -> bool:
    """Create `table` inside an open transaction. Returns True when it had to be created."""
    if tx.has_table(table.name):
        return False
    table.create(bind=tx.connection)
    return True
