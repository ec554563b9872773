"""data module"""

from .base import DbAdapter
from .mongodb import MongoDBAdapter
