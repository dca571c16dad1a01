"""Voice sources: where per-participant audio comes from."""
