# Overview: Flask extension instances for database, migrations and transition events.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .events import EventBus

db = SQLAlchemy()
migrate = Migrate()
events = EventBus()
