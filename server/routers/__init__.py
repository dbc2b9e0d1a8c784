"""HTTP routers for the Lockpick server."""
