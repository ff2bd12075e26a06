from Aletheia.store.base import KeyStore, MetadataUpsert
from Aletheia.store.json_file import JsonFileKeyStore
from Aletheia.store.memory import InMemoryKeyStore

__all__ = ["InMemoryKeyStore", "JsonFileKeyStore", "KeyStore", "MetadataUpsert"]
