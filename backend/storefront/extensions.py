# Overview: Flask extension instances shared by the storefront (database session + Alembic migrations).

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
# compare_type so autogenerate notices cents/JSON column type changes
migrate = Migrate(compare_type=True)
