"""Best-effort training-data logging and aggregate state checkpointing."""
