"""
Warehouse Exceptions
"""


class WarehouseError(Exception):
    """Base class for warehouse errors"""


class SaleValidationError(WarehouseError):
    """A sales row violates a fact-table rule and cannot be loaded"""

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Transaction {transaction_id}: {reason}")


class CustomerExistsError(WarehouseError):
    """A current version already exists for the customer"""

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} already has a current version")


class StagingSchemaError(WarehouseError):
    """A staged file does not carry the required columns"""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(f"Schema validation failed: {self.errors}")
