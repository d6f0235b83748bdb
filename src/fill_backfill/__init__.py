"""
Fill Backfill - historical trade fill downloader.

Walks an exchange account's fill history backward through time and writes it
to one CSV file per calendar day, without gaps or duplicates.
"""

__version__ = "1.0.0"
__author__ = "Fill Backfill Team"
