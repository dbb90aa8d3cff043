from roady.state.repositories import FilePlanRepository, FileStateRepository
from roady.state.store import JsonStateStore

__all__ = ["FilePlanRepository", "FileStateRepository", "JsonStateStore"]
