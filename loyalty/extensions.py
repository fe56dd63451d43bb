"""
Shared extension instances for the loyalty engine.

Bound to the app in create_app; models and services import db from here.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Ledger database (programs, tiers, accounts, transactions)
db = SQLAlchemy()

# Alembic migrations for the ledger schema
migrate = Migrate()
