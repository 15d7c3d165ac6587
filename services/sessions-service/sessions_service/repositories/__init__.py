from .relational_store import RelationalStore, UpsertOperation

__all__ = ["RelationalStore", "UpsertOperation"]
