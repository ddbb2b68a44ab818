from .validator import SchemaRegistry, ValidationError, get_schema_registry

__all__ = ["SchemaRegistry", "ValidationError", "get_schema_registry"]
