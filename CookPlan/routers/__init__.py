# Router modules for the CookPlan API
# Import order matters - routers register endpoints on the shared api_router

from . import base
from . import meals
from . import timelines
from . import live

__all__ = ['meals', 'timelines', 'live']
