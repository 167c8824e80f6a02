"""Tool-call protocol and thread session model."""
