from ujian.storage.gateway import Gateway, UserRepository

__all__ = ["Gateway", "UserRepository"]
