"""
Exceptions raised at the document store boundary.

Rule handlers never raise for missing entities or unrecognised enum
values; these exceptions cover programming and I/O errors only.
"""


class VoxmationError(Exception):
    """Base exception for the automation core."""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class UnknownCollectionError(VoxmationError, KeyError):
    """Collection name is not part of the data model."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown collection '{name}'")

    def __str__(self) -> str:
        return self.message


class InvalidRecordError(VoxmationError):
    """Record cannot be stored in the requested collection."""

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        super().__init__(f"Invalid record for '{collection}': {reason}")


class StoreError(VoxmationError):
    """Backing storage could not be read or written."""
