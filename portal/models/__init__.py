# Import every model module so Base.metadata knows all tables.
from portal.models import catalog, grants, security  # noqa: F401
