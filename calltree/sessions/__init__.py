"""Durable session storage: active state, snapshots and audit logs."""
