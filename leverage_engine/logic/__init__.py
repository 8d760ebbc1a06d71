"""Pure computation modules — no I/O."""
