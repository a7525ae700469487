"""Task tree: state machine, command service and HTTP routes."""
