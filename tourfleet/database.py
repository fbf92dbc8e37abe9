from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from tourfleet.core import config

_engine_kwargs: dict = {"echo": config.SQL_ECHO}
if config.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs["pool_pre_ping"] = True

engine = create_engine(config.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

BLOCKS_TABLE = 'vehicle_availability_blocks'
NO_OVERLAP_CONSTRAINT = 'vehicle_availability_blocks_no_overlap'

_schema_lock = Lock()
_availability_schema_checked = False


def ensure_availability_schema(bind=None) -> None:
    """Add the indexes and, on Postgres, the per-vehicle exclusion constraint.

    Safe to call on every request; the work happens once per process.
    """
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)

        if BLOCKS_TABLE not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        with bind.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_blocks_vehicle_range '
                    f'ON {BLOCKS_TABLE}(vehicle_id, start_time, end_time)'
                )
            )
            connection.execute(
                text(f'CREATE INDEX IF NOT EXISTS idx_blocks_date ON {BLOCKS_TABLE}(block_date)')
            )
            connection.execute(
                text(f'CREATE INDEX IF NOT EXISTS idx_blocks_booking ON {BLOCKS_TABLE}(booking_id)')
            )

            if bind.dialect.name == 'postgresql':
                exists = connection.execute(
                    text('SELECT 1 FROM pg_constraint WHERE conname = :name'),
                    {'name': NO_OVERLAP_CONSTRAINT},
                ).first()
                if exists is None:
                    connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
                    connection.execute(
                        text(
                            f'ALTER TABLE {BLOCKS_TABLE} ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} '
                            'EXCLUDE USING gist ('
                            'vehicle_id WITH =, '
                            "tsrange(start_time, end_time, '[)') WITH &&"
                            ')'
                        )
                    )

        _availability_schema_checked = True
