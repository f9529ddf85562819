# Models package init
"""
PlaceShare Backend: ORM Models
===============================

Importing this package registers every table with Base.metadata
(used by Alembic and by the test suite's create_all).
"""

from placeshare.models.place import Place
from placeshare.models.saved_place import SavedPlace
from placeshare.models.user import User

__all__ = ["Place", "SavedPlace", "User"]
