"""Frame processing stages and the per-frame orchestrator."""
