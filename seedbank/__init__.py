"""
seedbank
--------
Bulk importer for comic content (users, comics, chapters) into a relational
store, with content-addressed image deduplication across runs.
"""
__version__ = "0.1.0"
