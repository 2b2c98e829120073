"""bizledger - ledger, billing and payroll core of a business management application."""

__version__ = "0.1.0"
