# Overview: Flask extension instances shared by the app factory, models and CLI.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Sessions are bound per app context; services commit through db.session.
db = SQLAlchemy()
# Revisions live in backend/migrations (flask db upgrade).
migrate = Migrate()
