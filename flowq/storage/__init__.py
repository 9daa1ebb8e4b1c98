"""SQLite repositories for learned state, audit and business records."""
