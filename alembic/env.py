from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool
import os
from servicelog.db.session import Base

# import models
from servicelog.models.client import Client
from servicelog.models.activity import Activity
from servicelog.models.outcome import Outcome
from servicelog.models.service_log import ServiceLog
from servicelog.models.patient_entry import PatientEntry
from servicelog.models.custom_field import CustomField
from servicelog.models.field_choice import FieldChoice
from servicelog.models.custom_field_value import CustomFieldValue

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)
target_metadata = Base.metadata

def get_url():
    return os.getenv("DATABASE_URL")

def run_migrations_offline():
    context.configure(url=get_url(), target_metadata=target_metadata, literal_binds=True, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    cfg = config.get_section(config.config_ini_section) or {}
    cfg["sqlalchemy.url"] = get_url()
    connectable = engine_from_config(cfg, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
