"""
Database initialization script.
Creates all tables for offenders, check-ins, audits and job logs.
"""
from sqlalchemy import inspect

from esupervision.models import Base
from esupervision.models.base import engine as default_engine
from esupervision.utils.logging import get_logger

logger = get_logger(__name__)


def init_database(engine=None):
    """
    Create any missing tables.

    Returns:
        Names of the tables present afterwards
    """
    engine = engine or default_engine
    Base.metadata.create_all(bind=engine)
    tables = sorted(inspect(engine).get_table_names())
    logger.info("Database initialised", tables=tables)
    return tables


if __name__ == "__main__":
    init_database()
