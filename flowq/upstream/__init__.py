"""Client for the tenant's workflow engine."""
