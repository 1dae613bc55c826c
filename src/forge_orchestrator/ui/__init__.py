"""Command-line surface for forge-orchestrator."""
