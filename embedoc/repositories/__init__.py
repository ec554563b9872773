"""repositories module"""

from .base_repository import BaseRepository
from .mongodb import MongoDbRepository
