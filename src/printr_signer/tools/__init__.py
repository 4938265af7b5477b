"""Agent-facing tools exposed by the signer."""
