from .mongodb_repository import MongoDbRepository
