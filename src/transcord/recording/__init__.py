"""Recording lifecycle: participants, the session registry and the orchestrator."""
