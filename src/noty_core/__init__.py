"""
Noty core - note and folder lifecycle engine.

This package owns the authoritative note/folder collections of a personal
note-taking app: soft-delete retention, folder and note locking, archiving,
image attachments, and the push/pull protocol that keeps a read-only
companion replica in sync.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("noty-core")
except PackageNotFoundError:
    __version__ = "1.0.0"
