"""OKR Tracker: tenant-scoped OKR store and goal archive importer."""
