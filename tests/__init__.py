"""
Batch Ledger Test Suite

Tests are organized by component:
- test_recipe_service.py: conversion rules and raw requirement sizing
- test_batch_store.py: registration, FIFO availability, cancellation
- test_allocation.py: FIFO proposals
- test_assignment_commit.py: atomic deductions and material assignment
- test_transfers.py: full and split moves between branches
- test_adjustments.py: manual corrections and their audit trail
- test_ledger_validation.py: conservation checks and the management commands
- test_ledger_guardrails.py: no quantity writes outside the ledger package
- test_config.py: environment config, logging levels, quantity rounding
"""
