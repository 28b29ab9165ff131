"""Routers HTTP agrupados por recurso."""
