from .base import Base
from .analytics_models import Application, EventRecord

__all__ = ['Base', 'Application', 'EventRecord']
