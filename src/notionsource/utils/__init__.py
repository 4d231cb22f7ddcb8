from .chunk import chunked
from .hashing import hash_dict, md5_hash

__all__ = [
    "chunked",
    "md5_hash",
    "hash_dict",
]
