"""API routers.  Each module owns one resource and delegates to ``shipyard.ops``."""
