
# Overview: Flask extension instances for database, migrations and the analytics cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.analytics_cache import AnalyticsCache

db = SQLAlchemy()
migrate = Migrate()
analytics_cache = AnalyticsCache()
