"""Domain services. Import submodules directly (e.g. theftwatch.services.fanout)."""
