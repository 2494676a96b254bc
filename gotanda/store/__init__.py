from .kv import Batch, KVStore, StoreDecodeError, prefix_upper_bound

__all__ = ["Batch", "KVStore", "StoreDecodeError", "prefix_upper_bound"]
