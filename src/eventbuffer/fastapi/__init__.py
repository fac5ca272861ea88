from .app import create_app, resolve_partition, validate_payload

__all__ = ["create_app", "resolve_partition", "validate_payload"]
