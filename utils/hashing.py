"""
Content-addressed ids for catalog records.
"""
import hashlib


def mk_file_id(path, library_name: str) -> str:
    """
    Derive a record id from an absolute path and the owning library's name.

    The same (path, library) pair always yields the same id, which is what
    lets every scan write be an upsert. Callers pass absolute paths
    without following symlinks, so two links to one file get two ids.
    """
    key = f"{library_name}\0{path}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
