"""Services package: storage backends and notification dispatch."""
