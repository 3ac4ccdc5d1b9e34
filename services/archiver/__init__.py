"""
Telemetry Archiver Service

This service moves one day of solar telemetry readings to cold storage:
1. Fetches readings in the archival window from the history table
2. Saves daily rollup statistics for the fetched days
3. Writes the readings as a gzipped CSV archive to blob storage
4. Deletes the archived readings from the database (when enabled)

Runs daily as a scheduled task.
"""

__version__ = "1.0.0"
