# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
# SQLite cannot ALTER most constraints in place; batch mode rebuilds the table.
migrate = Migrate(render_as_batch=True)
