"""Twin registries: catalog fetch, install, lock file, and catalog maintenance."""
