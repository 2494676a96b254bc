"""Read-only sharing between accounts: the onlooker index and its routes."""
