"""Environment and persisted client preferences."""
