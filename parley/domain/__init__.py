"""Domain rules shared by the client and the TUI."""
